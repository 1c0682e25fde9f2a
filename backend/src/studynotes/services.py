"""Explicit construction of the long-lived services shared by the API and CLI."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from .cache import ChapterCache
from .config import AppSettings, get_settings
from .generation import GenerationGate
from .ingestion import CompositeSourceFetcher, DirectorySourceFeed, SourceFetcher, SyllabusSourceFeed, WebSourceFeed
from .jobs import JobRegistry
from .llm import LLMService, TextGenerator, configure_llm_cache
from .orchestrator import JobOrchestrator
from .quality import QualityChecker
from .retrieval import Retriever
from .syllabus import SyllabusMatcher, SyllabusRepository, TopicTemplates


@dataclass(slots=True)
class Services:
    settings: AppSettings
    cache: ChapterCache
    repository: SyllabusRepository
    matcher: SyllabusMatcher
    templates: TopicTemplates
    retriever: Retriever
    gate: GenerationGate
    registry: JobRegistry
    orchestrator: JobOrchestrator


def build_fetcher(settings: AppSettings, repository: SyllabusRepository) -> SourceFetcher:
    return CompositeSourceFetcher(
        [
            SyllabusSourceFeed(repository),
            DirectorySourceFeed(settings.paths.sources_dir, settings.sources.directory_confidence),
            WebSourceFeed(settings.sources),
        ]
    )


def build_services(
    settings: AppSettings | None = None,
    generator: TextGenerator | None = None,
    fetcher: SourceFetcher | None = None,
    cache: ChapterCache | None = None,
) -> Services:
    """Wire every service once; tests pass fakes for the generator and fetcher."""

    settings = settings or get_settings()
    if generator is None:
        configure_llm_cache(settings.cache)
        generator = LLMService(settings.model)

    repository = SyllabusRepository(path=settings.paths.syllabus_path)
    matcher = SyllabusMatcher(repository, settings.syllabus.fuzzy_threshold, settings.syllabus.max_suggestions)
    templates = TopicTemplates(path=settings.paths.topic_templates_path)
    cache = cache or ChapterCache(
        max_entries=settings.cache.max_entries,
        ttl=timedelta(hours=settings.cache.ttl_hours),
    )
    r = settings.retrieval
    retriever = Retriever(
        min_words=r.chunk_min_words,
        max_words=r.chunk_max_words,
        overlap_words=r.chunk_overlap_words,
        top_k=r.top_k,
        expanded_top_k=r.expanded_top_k,
        confidence_threshold=r.confidence_threshold,
    )
    gate = GenerationGate(
        generator,
        checker=QualityChecker(settings.generation),
        settings=settings.generation,
        max_context_chunks=r.max_context_chunks,
    )
    registry = JobRegistry()
    orchestrator = JobOrchestrator(
        settings=settings,
        cache=cache,
        matcher=matcher,
        templates=templates,
        fetcher=fetcher or build_fetcher(settings, repository),
        retriever=retriever,
        gate=gate,
        registry=registry,
    )
    return Services(
        settings=settings,
        cache=cache,
        repository=repository,
        matcher=matcher,
        templates=templates,
        retriever=retriever,
        gate=gate,
        registry=registry,
        orchestrator=orchestrator,
    )
