"""Source document feeds consumed by the notes pipeline."""
from __future__ import annotations

import asyncio
import logging
import mimetypes
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

import httpx
from langchain_community.document_loaders import PyPDFLoader, TextLoader
from langchain_community.document_transformers import Html2TextTransformer
from langchain_core.documents import Document

from .config import SourceSettings
from .errors import SourceFetchDegraded
from .models import Request, SourceDocument
from .syllabus import SyllabusRepository

logger = logging.getLogger(__name__)

FALLBACK_URL = "internal://fallback"


class SourceFetcher(Protocol):
    async def fetch_sources(self, request: Request) -> list[SourceDocument]: ...


class SyllabusSourceFeed:
    """Turns the board syllabus entry for the chapter into a source document."""

    def __init__(self, repository: SyllabusRepository) -> None:
        self.repository = repository

    async def fetch_sources(self, request: Request) -> list[SourceDocument]:
        topics = self.repository.chapter_topics(
            request.board, request.class_level, request.subject, request.chapter_name
        )
        if not topics:
            return []
        lines = [f"Chapter: {request.chapter_name}", f"Subject: {request.subject}", "Topics:"]
        lines.extend(f"{index}. {topic}" for index, topic in enumerate(topics, start=1))
        return [
            SourceDocument(
                url=f"syllabus://{request.board}/{request.class_level}/{request.subject}",
                kind="syllabus",
                title=f"{request.board} {request.subject} Class {request.class_level} syllabus",
                raw_text="\n".join(lines),
                confidence_weight=1.0,
            )
        ]


class DirectorySourceFeed:
    """Loads local notes/textbook files stored under ``<root>/<board>/<class>/<subject>``."""

    SUPPORTED_SUFFIXES = {".pdf", ".txt", ".md"}

    def __init__(self, root: Path, confidence: float = 0.9) -> None:
        self.root = Path(root)
        self.confidence = confidence

    def load(self, path: Path) -> list[Document]:
        """Load the document with an appropriate LangChain loader."""

        mime_type, _ = mimetypes.guess_type(path)
        if mime_type == "application/pdf":
            loader: PyPDFLoader | TextLoader = PyPDFLoader(str(path))
        else:
            loader = TextLoader(str(path), autodetect_encoding=True)
        return loader.load()

    def _collect(self, request: Request) -> list[SourceDocument]:
        folder = self.root / request.board / str(request.class_level) / request.subject
        if not folder.resolve().is_relative_to(self.root.resolve()):
            logger.warning("Refusing to read %s outside %s", folder, self.root)
            return []
        if not folder.is_dir():
            return []
        documents: list[SourceDocument] = []
        for path in sorted(folder.iterdir()):
            if path.suffix.lower() not in self.SUPPORTED_SUFFIXES:
                continue
            text = "\n".join(doc.page_content for doc in self.load(path)).strip()
            if text:
                documents.append(
                    SourceDocument(
                        url=path.resolve().as_uri(),
                        kind="textbook" if path.suffix.lower() == ".pdf" else "notes",
                        title=path.stem,
                        raw_text=text,
                        confidence_weight=self.confidence,
                    )
                )
        return documents

    async def fetch_sources(self, request: Request) -> list[SourceDocument]:
        return await asyncio.to_thread(self._collect, request)


class WebSourceFeed:
    """Fetches HTML pages built from URL templates and converts them to plain text."""

    def __init__(self, settings: SourceSettings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self.transport = transport
        self.transformer = Html2TextTransformer()

    def urls_for(self, request: Request) -> list[str]:
        values = {
            "board": quote(request.board),
            "class_level": request.class_level,
            "subject": quote(request.subject),
            "chapter": quote(request.chapter_name),
            "chapter_slug": quote(request.chapter_name.strip().replace(" ", "_")),
        }
        return [template.format(**values) for template in self.settings.url_templates]

    async def fetch_sources(self, request: Request) -> list[SourceDocument]:
        urls = self.urls_for(request)
        if not urls:
            return []
        async with httpx.AsyncClient(
            timeout=self.settings.timeout_seconds,
            headers={"User-Agent": self.settings.user_agent},
            follow_redirects=True,
            transport=self.transport,
        ) as client:
            results = await asyncio.gather(*(self._fetch(client, url) for url in urls), return_exceptions=True)
        documents: list[SourceDocument] = []
        for url, result in zip(urls, results, strict=True):
            if isinstance(result, Exception):
                logger.warning("Failed to fetch %s: %s", url, result)
                continue
            if result is not None:
                documents.append(result)
        return documents

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> SourceDocument | None:
        response = await client.get(url)
        response.raise_for_status()
        content_type = response.headers.get("content-type", "")
        text = response.text
        if "html" in content_type:
            html_docs = [Document(page_content=text, metadata={"source": url})]
            text = self.transformer.transform_documents(html_docs)[0].page_content
        text = text.strip()
        if not text:
            return None
        return SourceDocument(
            url=url,
            kind="notes",
            title=url.rsplit("/", 1)[-1] or url,
            raw_text=text,
            confidence_weight=self.settings.web_confidence,
        )


class CompositeSourceFetcher:
    """Queries every feed concurrently; a failing feed never blocks the others."""

    def __init__(self, feeds: Sequence[SourceFetcher]) -> None:
        self.feeds = list(feeds)

    async def fetch_sources(self, request: Request) -> list[SourceDocument]:
        if not self.feeds:
            return []
        results = await asyncio.gather(*(feed.fetch_sources(request) for feed in self.feeds), return_exceptions=True)
        documents: list[SourceDocument] = []
        failures = 0
        for feed, result in zip(self.feeds, results, strict=True):
            if isinstance(result, Exception):
                failures += 1
                logger.warning("Source feed %s failed: %s", type(feed).__name__, result)
                continue
            documents.extend(result)
        if failures == len(self.feeds):
            raise SourceFetchDegraded(f"All {failures} source feeds failed for {request.cache_key}")
        logger.info("Fetched %d source documents from %d feeds", len(documents), len(self.feeds))
        return documents


def usable_documents(documents: Sequence[SourceDocument], min_words: int) -> list[SourceDocument]:
    return [doc for doc in documents if len(doc.raw_text.split()) >= min_words]


def fallback_source_document(request: Request, topics: Sequence[str] = (), confidence: float = 0.8) -> SourceDocument:
    """Deterministic stand-in used when no feed produced usable text."""

    chapter = request.chapter_name
    subject = request.subject
    lines = [
        f"# {subject} - {chapter} Study Notes",
        f"Board: {request.board}. Class: {request.class_level}. Depth: {request.depth_level}.",
        f"## Introduction to {chapter}",
        f"{chapter} is a chapter of {subject} that students study for their board examinations.",
        "This chapter explains the main ideas, the key terms and the rules that connect them.",
    ]
    for topic in topics:
        lines.append(f"## {topic}")
        lines.append(f"{topic} is an important part of {chapter}. Learn its definition, its formula where one exists, "
                     f"and one example from daily life.")
    lines.extend(
        [
            f"## Applications of {chapter}",
            f"The ideas of {chapter} are used in engineering, in daily life and in later chapters of {subject}.",
            "## Exam Preparation",
            "Practise short questions, long questions and numerical problems from past papers.",
        ]
    )
    return SourceDocument(
        url=FALLBACK_URL,
        kind="notes",
        title=f"{subject} - {chapter} Study Notes",
        raw_text="\n".join(lines),
        confidence_weight=confidence,
    )
