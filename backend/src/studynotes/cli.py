"""Typer CLI for generating notes, resolving chapters, and running evaluations."""
from __future__ import annotations

import asyncio
import json
from dataclasses import asdict
from pathlib import Path

import httpx
import typer

from .config import get_settings
from .evaluation import run_batch_evaluation
from .models import Job, JobStatus, Request
from .observability import configure_logging
from .services import build_services
from .syllabus import SyllabusMatcher, SyllabusRepository

app = typer.Typer(help="CLI for the study notes generator")


async def _generate(request: Request) -> Job | None:
    services = build_services()
    orchestrator = services.orchestrator
    job_id = await orchestrator.submit(request)
    return await orchestrator.wait(job_id)


@app.command()
def generate(
    board: str,
    class_level: int,
    subject: str,
    chapter: str,
    depth: str = "intermediate",
    output: Path | None = typer.Option(None, help="Write the compiled chapter as JSON"),
) -> None:
    """Generate notes for one chapter and print a summary."""

    configure_logging(get_settings().observability.log_level)
    job = asyncio.run(_generate(Request(board, class_level, subject, chapter, depth)))
    if job is None:
        raise typer.Exit(code=1)
    if job.status is JobStatus.FAILED and job.error is not None:
        typer.echo(f"{job.error.kind}: {job.error.message}", err=True)
        for suggestion in job.error.suggestions:
            typer.echo(f"  did you mean: {suggestion}", err=True)
        raise typer.Exit(code=1)
    chapter_result = job.result
    if chapter_result is None:
        raise typer.Exit(code=1)
    typer.echo(
        f"{chapter_result.chapter_name}: {len(chapter_result.topics)} topics, {chapter_result.word_count} words, "
        f"quality {chapter_result.quality_score:.2f}, {chapter_result.fallback_topics} fallback topics"
    )
    for topic in chapter_result.topics:
        marker = " (fallback)" if topic.is_fallback else ""
        typer.echo(f"- {topic.topic_title}{marker}")
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(asdict(chapter_result), indent=2, default=str), encoding="utf-8")
        typer.echo(f"Saved chapter to {output}")


@app.command()
def resolve(board: str, class_level: int, subject: str, chapter: str) -> None:
    """Resolve a chapter name against the bundled syllabus."""

    settings = get_settings()
    matcher = SyllabusMatcher(
        SyllabusRepository(path=settings.paths.syllabus_path),
        settings.syllabus.fuzzy_threshold,
        settings.syllabus.max_suggestions,
    )
    resolution = matcher.resolve_chapter(board, class_level, subject, chapter)
    if resolution.exact_match:
        typer.echo(f"Exact match: {resolution.chapter}")
        for topic in resolution.topics:
            typer.echo(f"- {topic}")
        return
    if not resolution.found:
        typer.echo("No matching chapter found")
        raise typer.Exit(code=1)
    for match in resolution.suggestions:
        typer.echo(f"{match.similarity:.2f}  {match.chapter}")


@app.command("cache-stats")
def cache_stats(api_url: str = "http://localhost:8000") -> None:
    """Show chapter cache statistics of a running API server."""

    response = httpx.get(f"{api_url.rstrip('/')}/cache/stats", timeout=10)
    response.raise_for_status()
    typer.echo(json.dumps(response.json(), indent=2))


@app.command()
def evaluate() -> None:
    """Run the predefined evaluation suite."""

    configure_logging(get_settings().observability.log_level)
    results = run_batch_evaluation()
    typer.echo(f"Completed evaluation for {len(results)} requests")


if __name__ == "__main__":
    app()
