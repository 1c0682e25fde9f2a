"""Thread-safe registry of notes generation jobs."""
from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any

from .cache import Clock, utcnow
from .models import Job, Request

logger = logging.getLogger(__name__)


class JobRegistry:
    """Owns every Job; callers only ever see copies."""

    def __init__(self, clock: Clock = utcnow) -> None:
        self._clock = clock
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def now(self) -> datetime:
        return self._clock()

    def create(self, request: Request) -> Job:
        job = Job(id=str(uuid.uuid4()), request=request, created_at=self._clock())
        with self._lock:
            self._jobs[job.id] = job
        return self._snapshot(job)

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return self._snapshot(job) if job is not None else None

    def update(self, job_id: str, mutate: Callable[[Job], Any]) -> Job | None:
        """Apply ``mutate`` to the stored job under the lock; terminal jobs are left untouched."""

        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            if job.status.is_terminal:
                logger.debug("Ignoring update to terminal job %s", job_id)
                return self._snapshot(job)
            mutate(job)
            return self._snapshot(job)

    def sweep(self, retention: timedelta) -> int:
        cutoff = self._clock() - retention
        with self._lock:
            stale = [
                job_id
                for job_id, job in self._jobs.items()
                if job.status.is_terminal and (job.completed_at or job.created_at) < cutoff
            ]
            for job_id in stale:
                del self._jobs[job_id]
        if stale:
            logger.info("Swept %d finished jobs", len(stale))
        return len(stale)

    @staticmethod
    def _snapshot(job: Job) -> Job:
        return replace(job, counters=dict(job.counters))
