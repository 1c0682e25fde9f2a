"""Evaluation harness running the sample requests through the full pipeline."""
from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from dataclasses import asdict
from pathlib import Path
from statistics import fmean
from time import perf_counter
from typing import Any

from .config import get_settings
from .models import EvaluationResult, JobStatus, Request
from .services import Services, build_services

logger = logging.getLogger(__name__)

SAMPLE_REQUESTS_PATH = Path("sample_data/sample_requests.json")


def percentile(values: Sequence[float], fraction: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    index = min(len(ordered) - 1, max(0, round(fraction * len(ordered)) - 1))
    return ordered[index]


def load_requests(path: Path) -> list[tuple[str, Request]]:
    with open(path, encoding="utf-8") as handle:
        dataset = json.load(handle)
    return [
        (
            item["id"],
            Request(
                board=item["board"],
                class_level=int(item["class_level"]),
                subject=item["subject"],
                chapter_name=item["chapter_name"],
                depth_level=item.get("depth_level", "intermediate"),
            ),
        )
        for item in dataset
    ]


async def evaluate_requests(services: Services, requests: Sequence[tuple[str, Request]]) -> list[EvaluationResult]:
    """Run each request to a terminal state, one after another."""

    orchestrator = services.orchestrator
    results: list[EvaluationResult] = []
    for request_id, request in requests:
        start = perf_counter()
        job_id = await orchestrator.submit(request)
        job = await orchestrator.wait(job_id)
        latency = (perf_counter() - start) * 1000
        if job is None:
            continue
        chapter = job.result
        results.append(
            EvaluationResult(
                request_id=request_id,
                status=job.status.value,
                from_cache=job.from_cache,
                topics=len(chapter.topics) if chapter else 0,
                fallback_topics=chapter.fallback_topics if chapter else 0,
                quality_score=chapter.quality_score if chapter else 0.0,
                word_count=chapter.word_count if chapter else 0,
                latency_ms=latency,
                error_kind=job.error.kind if job.error else None,
            )
        )
        logger.info("Evaluated %s: %s in %.0f ms", request_id, job.status.value, latency)
    return results


def summarize(results: Sequence[EvaluationResult]) -> dict[str, Any]:
    latencies = [result.latency_ms for result in results]
    completed = [result for result in results if result.status == JobStatus.COMPLETED.value]
    return {
        "requests": len(results),
        "completed": len(completed),
        "p50": percentile(latencies, 0.5),
        "p95": percentile(latencies, 0.95),
        "mean_quality": fmean(result.quality_score for result in completed) if completed else 0.0,
        "fallback_topics": sum(result.fallback_topics for result in results),
    }


def run_batch_evaluation(
    services: Services | None = None,
    dataset_path: Path | None = None,
    output_path: Path | None = None,
) -> list[EvaluationResult]:
    settings = services.settings if services is not None else get_settings()
    dataset_path = dataset_path or settings.paths.project_root / SAMPLE_REQUESTS_PATH
    output_path = output_path or settings.paths.evaluation_dir / "latest.json"

    async def _run() -> list[EvaluationResult]:
        return await evaluate_requests(services or build_services(settings), load_requests(dataset_path))

    results = asyncio.run(_run())
    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "summary": summarize(results),
        "results": [asdict(result) for result in results],
    }
    output_path.write_text(json.dumps(payload, indent=2))
    return results
