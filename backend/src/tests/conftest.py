"""Shared fakes and fixtures for the notes pipeline tests."""
from __future__ import annotations

import json
import re
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from studynotes.config import AppSettings, CacheSettings, SourceSettings
from studynotes.models import Request, SourceDocument

EXPLANATION_LINE = "A force has a size and a direction, so we show it with an arrow on paper."
TOPIC_LINE = re.compile(r"^Topic: (.+)$", re.MULTILINE)


def topic_payload(title: str, **overrides: Any) -> dict[str, Any]:
    """A topic reply that passes every quality check."""

    payload: dict[str, Any] = {
        "topic_title": title,
        "definition": f"{title} describes a physical quantity that has both a size and a direction in space.",
        "explanation": "\n".join([EXPLANATION_LINE] * 20),
        "comparison": None,
        "example_detailed": (
            "A rickshaw driver in Lahore moves four kilometres east and then three kilometres north. "
            "The total path is seven kilometres, but the straight line from start to finish is only five "
            "kilometres, which is the size of the displacement."
        ),
        "example_short": "A cricket ball thrown north at ten metres per second.",
        "questions": [
            {
                "difficulty": "easy",
                "question": f"Define {title}.",
                "answer": "It is a quantity that needs both a number with a unit and a direction to be complete.",
            },
            {
                "difficulty": "medium",
                "question": "Why do we draw forces as arrows?",
                "answer": "The length of the arrow shows the size and the head of the arrow shows the direction clearly.",
            },
            {
                "difficulty": "hard",
                "question": "Find the resultant of 3 N east and 4 N north.",
                "answer": "Use Pythagoras: the square root of nine plus sixteen gives five newtons at 53 degrees north of east.",
            },
        ],
    }
    payload.update(overrides)
    return payload


def topic_json(title: str, **overrides: Any) -> str:
    return json.dumps(topic_payload(title, **overrides))


Responder = Callable[[str], str]


class FakeGenerator:
    """Records prompts; replies from a script first, then with a passing topic for the prompt's topic."""

    def __init__(self, script: list[str | Responder | Exception] | None = None, fail: bool = False) -> None:
        self.script = list(script or [])
        self.fail = fail
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise RuntimeError("generator offline")
        if self.script:
            step = self.script.pop(0)
            if isinstance(step, Exception):
                raise step
            if callable(step):
                return step(prompt)
            return step
        match = TOPIC_LINE.search(prompt)
        return topic_json(match.group(1) if match else "Unknown")


class StaticSourceFetcher:
    def __init__(self, documents: list[SourceDocument] | None = None, error: Exception | None = None) -> None:
        self.documents = list(documents or [])
        self.error = error
        self.calls = 0
        self.requests: list[Request] = []

    async def fetch_sources(self, request: Request) -> list[SourceDocument]:
        self.calls += 1
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return list(self.documents)


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


VECTORS_TEXT = " ".join(
    [
        "A vector is a quantity with magnitude and direction.",
        "Vectors are added with the head to tail rule.",
        "A vector can be resolved into rectangular components along the x and y axes.",
        "The dot product of two vectors gives a scalar quantity such as work.",
        "The cross product of two vectors gives a vector quantity such as torque.",
        "A body is in equilibrium when the net force and the net torque acting on it are zero.",
    ]
    * 8
)


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        sources=SourceSettings(url_templates=[]),
        cache=CacheSettings(llm_cache_enabled=False),
    )


@pytest.fixture
def vectors_request() -> Request:
    return Request(board="FBISE", class_level=11, subject="Physics", chapter_name="Vectors and Equilibrium")


@pytest.fixture
def textbook_document() -> SourceDocument:
    return SourceDocument(
        url="https://example.org/vectors",
        kind="textbook",
        title="Vectors",
        raw_text=VECTORS_TEXT,
        confidence_weight=0.9,
    )
