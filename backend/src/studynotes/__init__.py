"""Study notes generation service: syllabus-aligned chapters built by a quality-gated LLM pipeline."""

from __future__ import annotations

from .models import ComprehensiveChapter, Job, JobStatus, Request, TopicContent

__all__ = ["ComprehensiveChapter", "Job", "JobStatus", "Request", "TopicContent"]
