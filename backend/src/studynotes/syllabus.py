"""Syllabus tables of contents and chapter name resolution."""
from __future__ import annotations

import json
import logging
import threading
from importlib import resources
from pathlib import Path
from typing import Any

from .errors import SyllabusUnavailable
from .models import ChapterResolution, SyllabusMatch
from .similarity import combined_similarity, normalize

logger = logging.getLogger(__name__)

SOURCE_NAME = "board_syllabus"


def _load_json(path: Path | None, bundled_name: str) -> dict[str, Any]:
    if path is not None:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    bundled = resources.files("studynotes").joinpath("data").joinpath(bundled_name)
    return json.loads(bundled.read_text(encoding="utf-8"))


class SyllabusRepository:
    """Board -> class -> subject -> ordered chapters, each with declared topics."""

    def __init__(self, data: dict[str, Any] | None = None, path: Path | None = None) -> None:
        raw = data if data is not None else _load_json(path, "syllabus.json")
        self._table: dict[tuple[str, str, str], list[dict[str, Any]]] = {}
        self._names: dict[tuple[str, str, str], tuple[str, str]] = {}
        for board, classes in raw.items():
            for class_level, subjects in classes.items():
                for subject, chapters in subjects.items():
                    key = self._key(board, class_level, subject)
                    self._names[key] = (board, subject)
                    self._table[key] = [
                        {"chapter": item["chapter"], "topics": list(item.get("topics", []))} for item in chapters
                    ]
        self._boards = sorted(raw)
        self._toc_cache: dict[tuple[str, str, str], list[str]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(board: str, class_level: int | str, subject: str) -> tuple[str, str, str]:
        return normalize(board), str(class_level).strip(), normalize(subject)

    def list_boards(self) -> list[str]:
        return list(self._boards)

    def load_toc(self, board: str, class_level: int, subject: str) -> list[str]:
        """Return the ordered chapter names, raising when the triple is unknown."""

        key = self._key(board, class_level, subject)
        with self._lock:
            cached = self._toc_cache.get(key)
            if cached is not None:
                return list(cached)
            chapters = self._table.get(key)
            if not chapters:
                raise SyllabusUnavailable(board, class_level, subject)
            toc = [item["chapter"] for item in chapters]
            self._toc_cache[key] = toc
        logger.info("Loaded syllabus for %s class %s %s: %d chapters", board, class_level, subject, len(toc))
        return list(toc)

    def canonical_names(self, board: str, class_level: int, subject: str) -> tuple[str, str] | None:
        """Board and subject spelled as in the syllabus table."""

        return self._names.get(self._key(board, class_level, subject))

    def chapter_topics(self, board: str, class_level: int, subject: str, chapter: str) -> list[str]:
        target = normalize(chapter)
        for item in self._table.get(self._key(board, class_level, subject), []):
            if normalize(item["chapter"]) == target:
                return list(item["topics"])
        return []

    def clear_cache(self) -> None:
        with self._lock:
            self._toc_cache.clear()


class SyllabusMatcher:
    """Resolves a requested chapter name against the board syllabus."""

    def __init__(self, repository: SyllabusRepository, threshold: float = 0.2, max_suggestions: int = 5) -> None:
        self.repository = repository
        self.threshold = threshold
        self.max_suggestions = max_suggestions

    def resolve_chapter(self, board: str, class_level: int, subject: str, requested: str) -> ChapterResolution:
        try:
            toc = self.repository.load_toc(board, class_level, subject)
        except SyllabusUnavailable as exc:
            logger.warning("%s", exc)
            return ChapterResolution(found=False, exact_match=False)

        canonical_board, canonical_subject = self.repository.canonical_names(board, class_level, subject) or (
            board,
            subject,
        )
        target = normalize(requested)
        for item in toc:
            if normalize(item) == target:
                topics = self.repository.chapter_topics(board, class_level, subject, item)
                return ChapterResolution(
                    found=True,
                    exact_match=True,
                    toc_items=tuple(toc),
                    chapter=item,
                    topics=tuple(topics),
                    source=SOURCE_NAME,
                    board=canonical_board,
                    subject=canonical_subject,
                )

        suggestions = self.find_fuzzy_matches(requested, toc)
        logger.info("No exact match for '%s'; %d fuzzy suggestions", requested, len(suggestions))
        return ChapterResolution(
            found=bool(suggestions),
            exact_match=False,
            toc_items=tuple(toc),
            suggestions=tuple(suggestions),
            source=SOURCE_NAME,
            board=canonical_board,
            subject=canonical_subject,
        )

    def find_fuzzy_matches(self, requested: str, toc: list[str]) -> list[SyllabusMatch]:
        matches = [SyllabusMatch(chapter=item, similarity=combined_similarity(requested, item)) for item in toc]
        matches = [match for match in matches if match.similarity > self.threshold]
        matches.sort(key=lambda match: match.similarity, reverse=True)
        return matches[: self.max_suggestions]


class TopicTemplates:
    """Built-in per-subject/chapter topic lists used when the syllabus declares none."""

    def __init__(self, data: dict[str, dict[str, list[str]]] | None = None, path: Path | None = None) -> None:
        self._data = data if data is not None else _load_json(path, "topic_templates.json")

    def topics_for(self, subject: str, chapter: str) -> list[str]:
        chapter_lower = chapter.lower()
        for subject_name, chapters in self._data.items():
            if normalize(subject_name) != normalize(subject):
                continue
            for name, topics in chapters.items():
                name_lower = name.lower()
                if name_lower in chapter_lower or chapter_lower in name_lower:
                    return list(topics)
        return [f"Introduction to {chapter}", f"Applications of {chapter}"]
