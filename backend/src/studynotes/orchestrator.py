"""Asynchronous notes generation jobs with polled progress."""
from __future__ import annotations

import asyncio
import contextlib
import logging
import re
from collections.abc import Callable, Sequence
from datetime import timedelta
from statistics import fmean
from time import perf_counter

from .cache import ChapterCache
from .config import AppSettings
from .errors import (
    AmbiguousChapter,
    ChapterNotFound,
    ChapterResolutionError,
    GenerationExhausted,
    PipelineFailure,
    RequestValidationError,
)
from .fallback import fallback_topic
from .generation import GenerationGate
from .ingestion import SourceFetcher, fallback_source_document, usable_documents
from .jobs import JobRegistry
from .models import (
    ChapterResolution,
    ComprehensiveChapter,
    Job,
    JobError,
    JobStatus,
    Request,
    SourceDocument,
    TextChunk,
    TopicContent,
)
from .observability import FALLBACK_TOPICS, JOBS_FINISHED, JOBS_SUBMITTED, PIPELINE_LATENCY, traced_span
from .retrieval import Retriever
from .similarity import normalize
from .syllabus import SyllabusMatcher, TopicTemplates

logger = logging.getLogger(__name__)

_MARKDOWN_HEADING = re.compile(r"^#{2,6}\s+(.+?)\s*#*$")
_IGNORED_HEADINGS = {"contents", "references", "see also", "external links", "notes", "further reading", "bibliography"}


def extract_headings(text: str, max_words: int = 8) -> list[str]:
    """Pick heading-like lines (markdown ``##`` headings) out of fetched text."""

    headings: list[str] = []
    for line in text.splitlines():
        match = _MARKDOWN_HEADING.match(line.strip())
        if not match:
            continue
        title = match.group(1).strip(" *_")
        if not title or len(title.split()) > max_words or normalize(title) in _IGNORED_HEADINGS:
            continue
        headings.append(title)
    return headings


def dedupe_topics(candidates: Sequence[str], limit: int) -> list[str]:
    seen: set[str] = set()
    topics: list[str] = []
    for candidate in candidates:
        key = normalize(candidate)
        if not key or key in seen:
            continue
        seen.add(key)
        topics.append(candidate.strip())
        if len(topics) >= limit:
            break
    return topics


class JobOrchestrator:
    """Runs validate -> resolve -> fetch -> plan -> generate -> compile -> cache as one task per job."""

    def __init__(
        self,
        settings: AppSettings,
        cache: ChapterCache,
        matcher: SyllabusMatcher,
        templates: TopicTemplates,
        fetcher: SourceFetcher,
        retriever: Retriever,
        gate: GenerationGate,
        registry: JobRegistry | None = None,
    ) -> None:
        self.settings = settings
        self.cache = cache
        self.matcher = matcher
        self.templates = templates
        self.fetcher = fetcher
        self.retriever = retriever
        self.gate = gate
        self.registry = registry or JobRegistry()
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._inflight: dict[str, asyncio.Future[ComprehensiveChapter | None]] = {}
        self._maintenance: list[asyncio.Task[None]] = []

    def validate_request(self, request: Request) -> list[str]:
        jobs = self.settings.jobs
        violations: list[str] = []
        if not str(request.board or "").strip():
            violations.append("board is required")
        if not str(request.subject or "").strip():
            violations.append("subject is required")
        if not str(request.chapter_name or "").strip():
            violations.append("chapter_name is required")
        if not isinstance(request.class_level, int) or isinstance(request.class_level, bool):
            violations.append("class_level must be an integer")
        elif not jobs.min_class <= request.class_level <= jobs.max_class:
            violations.append(f"class_level must be between {jobs.min_class} and {jobs.max_class}")
        if request.depth_level not in jobs.depth_levels:
            violations.append(f"depth_level must be one of: {', '.join(jobs.depth_levels)}")
        return violations

    async def submit(self, request: Request) -> str:
        """Validate the request, create a job and schedule its processing; returns the job id."""

        violations = self.validate_request(request)
        if violations:
            raise RequestValidationError(violations)
        job = self.registry.create(request)
        JOBS_SUBMITTED.inc()
        key = request.cache_key
        leader = key not in self._inflight
        if leader:
            self._inflight[key] = asyncio.get_running_loop().create_future()
        task = asyncio.create_task(self._run(job.id, request, leader), name=f"notes-job-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job.id, None))
        logger.info("Submitted job %s for %s", job.id, key)
        return job.id

    def status(self, job_id: str) -> Job | None:
        return self.registry.get(job_id)

    async def wait(self, job_id: str) -> Job | None:
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return self.status(job_id)

    def start(self) -> None:
        """Launch the periodic job-retention and cache-expiry sweeps."""

        if self._maintenance:
            return
        self._maintenance = [
            asyncio.create_task(self._periodic(self.settings.jobs.sweep_interval_seconds, self.sweep_jobs)),
            asyncio.create_task(self._periodic(self.settings.cache.sweep_interval_seconds, self.cache.purge_expired)),
        ]

    async def aclose(self) -> None:
        for task in self._maintenance:
            task.cancel()
        for task in self._maintenance:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._maintenance = []

    def sweep_jobs(self) -> int:
        return self.registry.sweep(timedelta(minutes=self.settings.jobs.retention_minutes))

    @staticmethod
    async def _periodic(interval: float, action: Callable[[], int]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                action()
            except Exception:
                logger.exception("Maintenance sweep %s failed", getattr(action, "__name__", action))

    async def _run(self, job_id: str, request: Request, leader: bool) -> None:
        start = perf_counter()
        chapter: ComprehensiveChapter | None = None
        try:
            chapter = await self._lookup(job_id, request, leader)
            if chapter is not None:
                self._complete(job_id, chapter, from_cache=True)
                return
            with traced_span("notes_pipeline"):
                chapter = await self._generate(job_id, request, start)
            self.cache.set(request, chapter)
            self._complete(job_id, chapter, from_cache=False)
        except ChapterResolutionError as exc:
            self._fail(job_id, JobError(kind=exc.kind, message=str(exc), suggestions=tuple(exc.suggestions)))
        except Exception as exc:
            logger.exception("Job %s failed", job_id)
            self._fail(job_id, JobError(kind=PipelineFailure.kind, message=str(exc) or type(exc).__name__))
        finally:
            PIPELINE_LATENCY.observe(perf_counter() - start)
            if leader:
                future = self._inflight.pop(request.cache_key, None)
                if future is not None and not future.done():
                    future.set_result(chapter)

    async def _lookup(self, job_id: str, request: Request, leader: bool) -> ComprehensiveChapter | None:
        self._advance(job_id, JobStatus.INITIALIZING, 5, "Checking cache for existing notes")
        cached = self.cache.get(request)
        if cached is not None or leader:
            return cached
        pending = self._inflight.get(request.cache_key)
        if pending is None:
            return self.cache.get(request)
        self._advance(job_id, JobStatus.INITIALIZING, 5, "Waiting for an identical request already in progress")
        return await asyncio.shield(pending)

    async def _generate(self, job_id: str, request: Request, start: float) -> ComprehensiveChapter:
        resolution = self._resolve(job_id, request)
        chapter_name = resolution.chapter or request.chapter_name
        documents = await self._fetch(job_id, resolution.canonical_request(request), list(resolution.topics))

        self._advance(job_id, JobStatus.PROCESSING, 40, "Chunking source documents")
        corpus = self.retriever.index(documents)
        topics = self._plan_topics(request, resolution, documents)
        self._advance(
            job_id,
            JobStatus.PROCESSING,
            50,
            f"Planned {len(topics)} topics",
            chunks_indexed=len(corpus),
            topics_planned=len(topics),
        )

        contents: list[TopicContent] = []
        for index, topic in enumerate(topics):
            percent = 50 + index / len(topics) * 40
            self._advance(job_id, JobStatus.GENERATING, percent, f"Generating topic {index + 1}/{len(topics)}: {topic}")
            contents.append(await self._produce(job_id, topic, request, corpus))

        self._advance(job_id, JobStatus.GENERATING, 95, "Compiling chapter")
        return self._compile(job_id, request, chapter_name, contents, documents, perf_counter() - start)

    def _resolve(self, job_id: str, request: Request) -> ChapterResolution:
        self._advance(job_id, JobStatus.FETCHING_SYLLABUS, 10, "Resolving chapter against the board syllabus")
        resolution = self.matcher.resolve_chapter(
            request.board, request.class_level, request.subject, request.chapter_name
        )
        if not resolution.found:
            raise ChapterNotFound(
                f"Chapter '{request.chapter_name}' was not found in the {request.board} class "
                f"{request.class_level} {request.subject} syllabus",
                resolution.suggestion_names,
            )
        if not resolution.exact_match:
            raise AmbiguousChapter(
                f"Chapter '{request.chapter_name}' did not match exactly; choose one of the suggested chapters",
                resolution.suggestion_names,
            )
        return resolution

    async def _fetch(self, job_id: str, request: Request, declared_topics: list[str]) -> list[SourceDocument]:
        self._advance(job_id, JobStatus.SCRAPING, 15, "Fetching source documents")
        sources = self.settings.sources
        try:
            with traced_span("fetch_sources"):
                fetched = await self.fetcher.fetch_sources(request)
        except Exception as exc:  # noqa: BLE001 - recovered with the synthetic document below
            logger.warning("Source fetch degraded for job %s: %s", job_id, exc)
            fetched = []
        documents = usable_documents(fetched, sources.min_document_words)
        if not documents:
            topics = declared_topics or self.templates.topics_for(request.subject, request.chapter_name)
            documents = [fallback_source_document(request, topics, sources.fallback_confidence)]
            logger.info("No usable sources for job %s; using fallback document", job_id)
        self._advance(
            job_id,
            JobStatus.SCRAPING,
            35,
            f"Collected {len(documents)} source documents",
            documents_fetched=len(fetched),
            documents_usable=len(documents),
        )
        return documents

    def _plan_topics(
        self, request: Request, resolution: ChapterResolution, documents: Sequence[SourceDocument]
    ) -> list[str]:
        limit = self.settings.generation.max_topics
        if resolution.topics:
            return dedupe_topics(resolution.topics, limit)
        candidates = list(self.templates.topics_for(request.subject, resolution.chapter or request.chapter_name))
        for document in documents:
            candidates.extend(extract_headings(document.raw_text))
        return dedupe_topics(candidates, limit)

    async def _produce(self, job_id: str, topic: str, request: Request, corpus: Sequence[TextChunk]) -> TopicContent:
        context = self.retriever.retrieve(topic, corpus)
        try:
            content = await self.gate.produce_topic(topic, request, context)
            attempts = content.attempts
        except GenerationExhausted as exc:
            logger.warning("Using fallback content for '%s': %s", topic, exc)
            FALLBACK_TOPICS.inc()
            content = fallback_topic(topic, request)
            attempts = exc.attempts
        self._count(
            job_id,
            topics_generated=1,
            generation_attempts=attempts,
            fallback_topics=int(content.is_fallback),
        )
        return content

    def _compile(
        self,
        job_id: str,
        request: Request,
        chapter_name: str,
        contents: Sequence[TopicContent],
        documents: Sequence[SourceDocument],
        elapsed: float,
    ) -> ComprehensiveChapter:
        return ComprehensiveChapter(
            id=job_id,
            request=request,
            chapter_name=chapter_name,
            topics=tuple(contents),
            word_count=sum(content.word_count for content in contents),
            generation_seconds=elapsed,
            quality_score=fmean(content.pass_rate for content in contents) if contents else 0.0,
            fallback_topics=sum(1 for content in contents if content.is_fallback),
            sources=tuple(dict.fromkeys(document.url for document in documents)),
            generated_at=self.registry.now(),
        )

    def _advance(self, job_id: str, status: JobStatus, percent: float, step: str, **counters: int) -> None:
        def mutate(job: Job) -> None:
            job.status = status
            job.progress_percent = max(job.progress_percent, min(100.0, percent))
            job.current_step = step
            job.counters.update(counters)

        self.registry.update(job_id, mutate)
        logger.debug("Job %s: %s (%.0f%%)", job_id, step, percent)

    def _count(self, job_id: str, **increments: int) -> None:
        def mutate(job: Job) -> None:
            for name, value in increments.items():
                job.counters[name] = job.counters.get(name, 0) + value

        self.registry.update(job_id, mutate)

    def _complete(self, job_id: str, chapter: ComprehensiveChapter, from_cache: bool) -> None:
        now = self.registry.now()

        def mutate(job: Job) -> None:
            job.status = JobStatus.COMPLETED
            job.progress_percent = 100.0
            job.current_step = "Served from cache" if from_cache else "Notes generation completed"
            job.result = chapter
            job.from_cache = from_cache
            job.completed_at = now

        self.registry.update(job_id, mutate)
        JOBS_FINISHED.labels(JobStatus.COMPLETED.value).inc()
        logger.info("Job %s completed (from_cache=%s, %d topics)", job_id, from_cache, len(chapter.topics))

    def _fail(self, job_id: str, error: JobError) -> None:
        now = self.registry.now()

        def mutate(job: Job) -> None:
            job.status = JobStatus.FAILED
            job.current_step = f"Failed: {error.message}"
            job.error = error
            job.completed_at = now

        self.registry.update(job_id, mutate)
        JOBS_FINISHED.labels(JobStatus.FAILED.value).inc()
        logger.warning("Job %s failed with %s: %s", job_id, error.kind, error.message)
