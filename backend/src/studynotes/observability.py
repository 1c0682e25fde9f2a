"""Observability helpers for tracing, metrics, and logging."""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from time import perf_counter

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import Counter, Histogram

from .config import ObservabilitySettings

logger = logging.getLogger("studynotes")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s | %(message)s"

tracer = trace.get_tracer("studynotes")

PIPELINE_LATENCY = Histogram(
    "notes_pipeline_latency_seconds",
    "Wall time of notes generation jobs",
    buckets=(1, 5, 15, 30, 60, 120, 300, 600),
)
STEP_LATENCY = Histogram(
    "notes_step_latency_ms",
    "Latency of traced pipeline steps",
    labelnames=("step",),
    buckets=(10, 50, 100, 250, 500, 1000, 2000, 5000, 15000),
)
JOBS_SUBMITTED = Counter("notes_jobs_submitted", "Jobs accepted for processing")
JOBS_FINISHED = Counter("notes_jobs_finished", "Jobs that reached a terminal state", labelnames=("status",))
GENERATION_ATTEMPTS = Counter("notes_generation_attempts", "Topic generation attempts", labelnames=("outcome",))
FALLBACK_TOPICS = Counter("notes_fallback_topics", "Topics replaced by deterministic fallback content")
CACHE_LOOKUPS = Counter("notes_cache_lookups", "Chapter cache lookups", labelnames=("result",))
TOKEN_USAGE = Counter("notes_token_usage", "Token usage", labelnames=("type",))


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def configure_tracing(settings: ObservabilitySettings) -> None:
    if not settings.enable_tracing:
        return
    resource = Resource.create({"service.name": "studynotes"})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))
    trace.set_tracer_provider(provider)
    logger.info("Tracing enabled, exporting to %s", settings.otlp_endpoint)


@contextmanager
def traced_span(name: str) -> Iterator[None]:
    start = perf_counter()
    with tracer.start_as_current_span(name):
        yield
    duration_ms = (perf_counter() - start) * 1000
    STEP_LATENCY.labels(name).observe(duration_ms)


def record_tokens(prompt: int, completion: int) -> None:
    TOKEN_USAGE.labels("prompt").inc(prompt)
    TOKEN_USAGE.labels("completion").inc(completion)
