"""FastAPI server exposing notes job submission and status endpoints."""
from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request as HTTPRequest
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app
from pydantic import BaseModel, Field

from .config import get_settings
from .errors import RequestValidationError
from .models import Job, Request
from .observability import configure_logging, configure_tracing
from .services import Services, build_services


class NotesRequest(BaseModel):
    board: str = Field(default="", description="Education board, e.g. FBISE")
    class_level: int | None = Field(default=None, description="Class 9-12")
    subject: str = Field(default="", description="Subject name")
    chapter_name: str = Field(default="", description="Chapter title as printed in the syllabus")
    depth_level: str = Field(default="intermediate", description="basic, intermediate or advanced")


class SubmitResponse(BaseModel):
    job_id: str
    status_url: str


class JobErrorPayload(BaseModel):
    kind: str
    message: str
    suggestions: list[str]


class JobStatusResponse(BaseModel):
    job_id: str
    status: str
    progress_percent: float
    current_step: str
    counters: dict[str, int]
    created_at: datetime
    completed_at: datetime | None
    from_cache: bool
    chapter: dict[str, Any] | None
    error: JobErrorPayload | None


def job_to_response(job: Job) -> JobStatusResponse:
    chapter = None
    if job.result is not None:
        chapter = asdict(job.result)
        chapter["estimated_reading_minutes"] = job.result.estimated_reading_minutes
    error = None
    if job.error is not None:
        error = JobErrorPayload(kind=job.error.kind, message=job.error.message, suggestions=list(job.error.suggestions))
    return JobStatusResponse(
        job_id=job.id,
        status=job.status.value,
        progress_percent=job.progress_percent,
        current_step=job.current_step,
        counters=job.counters,
        created_at=job.created_at,
        completed_at=job.completed_at,
        from_cache=job.from_cache,
        chapter=chapter,
        error=error,
    )


def services_of(request: HTTPRequest) -> Services:
    return request.app.state.services


def create_app(services: Services | None = None) -> FastAPI:
    settings = services.settings if services is not None else get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(settings.observability.log_level)
        configure_tracing(settings.observability)
        if app.state.services is None:
            app.state.services = build_services(settings)
        orchestrator = app.state.services.orchestrator
        orchestrator.start()
        try:
            yield
        finally:
            await orchestrator.aclose()

    app = FastAPI(title="Study Notes Generator", version="0.1.0", lifespan=lifespan)
    app.state.services = services
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if settings.observability.enable_prometheus:
        app.mount("/metrics", make_asgi_app())

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.post("/notes", status_code=202, response_model=SubmitResponse)
    async def submit_notes(payload: NotesRequest, request: HTTPRequest) -> SubmitResponse:
        orchestrator = services_of(request).orchestrator
        notes_request = Request(
            board=payload.board.strip(),
            class_level=payload.class_level,  # type: ignore[arg-type]
            subject=payload.subject.strip(),
            chapter_name=payload.chapter_name.strip(),
            depth_level=payload.depth_level.strip().lower(),
        )
        try:
            job_id = await orchestrator.submit(notes_request)
        except RequestValidationError as exc:
            raise HTTPException(status_code=422, detail={"kind": exc.kind, "violations": exc.violations}) from exc
        return SubmitResponse(job_id=job_id, status_url=f"/notes/{job_id}")

    @app.get("/notes/{job_id}", response_model=JobStatusResponse)
    def job_status(job_id: str, request: HTTPRequest) -> JobStatusResponse:
        job = services_of(request).orchestrator.status(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail=f"Unknown job: {job_id}")
        return job_to_response(job)

    @app.get("/syllabus/resolve")
    def resolve_chapter(
        request: HTTPRequest,
        board: str = Query(...),
        class_level: int = Query(...),
        subject: str = Query(...),
        chapter: str = Query(...),
    ) -> dict:
        resolution = services_of(request).matcher.resolve_chapter(board, class_level, subject, chapter)
        return asdict(resolution)

    @app.get("/cache/stats")
    def cache_stats(request: HTTPRequest) -> dict:
        return services_of(request).cache.stats()

    @app.delete("/cache")
    def clear_cache(request: HTTPRequest) -> dict:
        return {"cleared": services_of(request).cache.clear()}

    return app


app = create_app()

__all__ = ["app", "create_app"]
