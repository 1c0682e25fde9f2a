"""Core domain models for the notes pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any


def _key_part(value: Any) -> str:
    return "_".join(str(value).lower().split())


@dataclass(slots=True, frozen=True)
class Request:
    board: str
    class_level: int
    subject: str
    chapter_name: str
    depth_level: str = "intermediate"

    @property
    def cache_key(self) -> str:
        parts = (self.board, self.class_level, self.subject, self.chapter_name, self.depth_level)
        return "::".join(_key_part(part) for part in parts)


class JobStatus(str, Enum):
    INITIALIZING = "initializing"
    FETCHING_SYLLABUS = "fetching_syllabus"
    SCRAPING = "scraping"
    PROCESSING = "processing"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass(slots=True, frozen=True)
class SourceDocument:
    url: str
    kind: str
    title: str
    raw_text: str
    confidence_weight: float = 1.0


@dataclass(slots=True, frozen=True)
class TextChunk:
    text: str
    source_url: str
    source_kind: str
    score: float = 0.0


@dataclass(slots=True, frozen=True)
class ExamQuestion:
    difficulty: str
    question: str
    answer: str


@dataclass(slots=True, frozen=True)
class TopicContent:
    topic_title: str
    definition: str
    explanation: str
    example_detailed: str
    example_short: str
    questions: tuple[ExamQuestion, ...]
    comparison: str | None = None
    pass_rate: float = 1.0
    attempts: int = 1
    is_fallback: bool = False

    @property
    def word_count(self) -> int:
        parts = [self.definition, self.explanation, self.example_detailed, self.example_short, self.comparison or ""]
        for item in self.questions:
            parts.extend((item.question, item.answer))
        return sum(len(part.split()) for part in parts)


@dataclass(slots=True, frozen=True)
class QualityReport:
    presence: bool
    length: bool
    syllabus_alignment: bool
    answer_check: bool
    readability_grade: float
    readability_score: float
    readability: bool
    safety: bool = True
    issues: tuple[str, ...] = ()

    @property
    def checks(self) -> dict[str, bool]:
        return {
            "presence": self.presence,
            "length": self.length,
            "syllabus_alignment": self.syllabus_alignment,
            "answer_check": self.answer_check,
            "readability": self.readability,
            "safety": self.safety,
        }

    @property
    def passed(self) -> bool:
        return all(self.checks.values())

    @property
    def pass_rate(self) -> float:
        checks = self.checks
        return sum(checks.values()) / len(checks)


@dataclass(slots=True, frozen=True)
class SyllabusMatch:
    chapter: str
    similarity: float


@dataclass(slots=True, frozen=True)
class ChapterResolution:
    found: bool
    exact_match: bool
    toc_items: tuple[str, ...] = ()
    suggestions: tuple[SyllabusMatch, ...] = ()
    chapter: str | None = None
    topics: tuple[str, ...] = ()
    source: str = "none"
    board: str | None = None
    subject: str | None = None

    @property
    def suggestion_names(self) -> list[str]:
        return [match.chapter for match in self.suggestions]

    def canonical_request(self, request: Request) -> Request:
        """The request rewritten with board, subject and chapter as the syllabus spells them."""

        return replace(
            request,
            board=self.board or request.board,
            subject=self.subject or request.subject,
            chapter_name=self.chapter or request.chapter_name,
        )


@dataclass(slots=True, frozen=True)
class ComprehensiveChapter:
    id: str
    request: Request
    chapter_name: str
    topics: tuple[TopicContent, ...]
    word_count: int
    generation_seconds: float
    quality_score: float
    fallback_topics: int
    sources: tuple[str, ...]
    generated_at: datetime

    @property
    def estimated_reading_minutes(self) -> int:
        return max(1, round(self.word_count / 200))


@dataclass(slots=True)
class CacheEntry:
    key: str
    payload: Any
    created_at: datetime
    last_accessed_at: datetime
    expires_at: datetime
    access_count: int = 0


@dataclass(slots=True, frozen=True)
class JobError:
    kind: str
    message: str
    suggestions: tuple[str, ...] = ()


@dataclass(slots=True)
class Job:
    id: str
    request: Request
    created_at: datetime
    status: JobStatus = JobStatus.INITIALIZING
    progress_percent: float = 0.0
    current_step: str = "Job created and queued"
    counters: dict[str, int] = field(default_factory=dict)
    completed_at: datetime | None = None
    error: JobError | None = None
    result: ComprehensiveChapter | None = None
    from_cache: bool = False


@dataclass(slots=True)
class EvaluationResult:
    request_id: str
    status: str
    from_cache: bool
    topics: int
    fallback_topics: int
    quality_score: float
    word_count: int
    latency_ms: float
    error_kind: str | None = None
