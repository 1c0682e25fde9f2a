"""LangGraph definition for the quality-gated topic generation loop."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace
from statistics import fmean
from typing import Any, TypedDict

from langgraph.graph import END, START, StateGraph

from .config import GenerationSettings
from .errors import GenerationExhausted
from .llm import TextGenerator, extract_json
from .models import ExamQuestion, QualityReport, Request, TextChunk, TopicContent
from .observability import GENERATION_ATTEMPTS, traced_span
from .quality import QualityChecker

logger = logging.getLogger(__name__)

DIFFICULTIES = ("easy", "medium", "hard")

OUTPUT_SCHEMA = """{
  "topic_title": "...",
  "definition": "...",
  "explanation": "...",
  "comparison": "... (only when the topic compares two ideas, otherwise null)",
  "example_detailed": "...",
  "example_short": "...",
  "questions": [
    {"difficulty": "easy", "question": "...", "answer": "..."},
    {"difficulty": "medium", "question": "...", "answer": "..."},
    {"difficulty": "hard", "question": "...", "answer": "..."}
  ]
}"""


class GateState(TypedDict, total=False):
    topic_title: str
    request: Request
    context: list[TextChunk]
    amendment: str | None
    attempts: int
    content: TopicContent | None
    report: QualityReport | None
    issues: list[str]
    pass_rates: list[float]


def format_context(chunks: Sequence[TextChunk]) -> str:
    formatted = []
    for index, chunk in enumerate(chunks, start=1):
        formatted.append(f"[{index}] Source: {chunk.source_kind} {chunk.source_url}\n{chunk.text}")
    return "\n\n".join(formatted)


def build_prompt(topic_title: str, request: Request, context: Sequence[TextChunk], amendment: str | None = None) -> str:
    lines = [
        f"Task: write a complete study-notes page for one topic of {request.subject}, "
        f"Class {request.class_level}, Board {request.board}, Chapter \"{request.chapter_name}\".",
        f"Topic: {topic_title}",
        f"Depth: {request.depth_level}",
        "",
        "Requirements:",
        "- definition: 1-5 lines (10-150 words).",
        "- explanation: at least 250 words over at least 15 separate lines.",
        "- example_detailed: a real-life example of 30-200 words, Pakistan-relevant when possible.",
        "- example_short: a one-line micro example of 5-30 words.",
        "- questions: exactly 3 exam questions (easy, medium, hard), each answer at least 10 words.",
        "",
        "Context:",
        format_context(context) or "(no supporting passages retrieved)",
        "",
        "Respond with JSON only, using this schema:",
        OUTPUT_SCHEMA,
    ]
    if amendment:
        lines.extend(["", amendment])
    return "\n".join(lines)


def expansion_instruction(topic_title: str) -> str:
    return (
        f"IMPORTANT: the previous draft for \"{topic_title}\" was too short. Expand every section to meet the "
        "word and line requirements: the explanation must have at least 250 words across at least 15 lines, "
        "the definition 10-150 words, the detailed example 30-200 words and the short example 5-30 words."
    )


def _normalize_text(value: Any) -> str:
    if isinstance(value, list):
        return "\n".join(str(item) for item in value if item)
    if value is None:
        return ""
    return str(value).strip()


def _normalize_questions(value: Any) -> tuple[ExamQuestion, ...]:
    if not isinstance(value, list):
        return ()
    questions: list[ExamQuestion] = []
    for index, entry in enumerate(value):
        if not isinstance(entry, dict):
            continue
        default = DIFFICULTIES[index] if index < len(DIFFICULTIES) else "hard"
        questions.append(
            ExamQuestion(
                difficulty=str(entry.get("difficulty") or default).lower(),
                question=_normalize_text(entry.get("question") or entry.get("q")),
                answer=_normalize_text(entry.get("answer") or entry.get("a")),
            )
        )
    return tuple(questions)


def parse_topic_content(raw: str, topic_title: str) -> TopicContent:
    """Validate a model reply into TopicContent; raises ValueError when it is not a JSON object."""

    data = extract_json(raw)
    comparison = _normalize_text(data.get("comparison")) or None
    return TopicContent(
        topic_title=_normalize_text(data.get("topic_title") or data.get("title")) or topic_title,
        definition=_normalize_text(data.get("definition")),
        explanation=_normalize_text(data.get("explanation")),
        example_detailed=_normalize_text(data.get("example_detailed")),
        example_short=_normalize_text(data.get("example_short")),
        questions=_normalize_questions(data.get("questions")),
        comparison=comparison,
    )


class GenerationGate:
    """Generate -> check -> (expand|retry) loop bounded by ``max_attempts``."""

    def __init__(
        self,
        generator: TextGenerator,
        checker: QualityChecker | None = None,
        settings: GenerationSettings | None = None,
        max_context_chunks: int = 8,
    ) -> None:
        self.generator = generator
        self.settings = settings or GenerationSettings()
        self.checker = checker or QualityChecker(self.settings)
        self.max_attempts = self.settings.max_attempts
        self.max_context_chunks = max_context_chunks
        self.graph = self.build_graph().compile()

    async def generate_node(self, state: GateState) -> GateState:
        topic = state["topic_title"]
        attempts = state.get("attempts", 0) + 1
        prompt = build_prompt(topic, state["request"], state.get("context", []), state.get("amendment"))
        logger.info("Generating '%s' (attempt %d/%d)", topic, attempts, self.max_attempts)
        try:
            with traced_span("generate_topic"):
                raw = await self.generator.generate(prompt)
            content = parse_topic_content(raw, topic)
        except Exception as exc:  # noqa: BLE001 - any generator failure consumes one attempt
            logger.warning("Attempt %d for '%s' failed: %s", attempts, topic, exc)
            GENERATION_ATTEMPTS.labels("error").inc()
            return {
                **state,
                "attempts": attempts,
                "content": None,
                "report": None,
                "issues": [f"Generation failed: {exc}"],
            }
        return {**state, "attempts": attempts, "content": content, "report": None, "issues": []}

    def check_node(self, state: GateState) -> GateState:
        content = state.get("content")
        pass_rates = state.get("pass_rates", [])
        if content is None:
            return {**state, "pass_rates": pass_rates + [0.0]}
        report = self.checker.check(content, state["topic_title"])
        outcome = "accepted" if report.passed else "rejected"
        GENERATION_ATTEMPTS.labels(outcome).inc()
        logger.info(
            "Quality check for '%s': %s (pass rate %.2f, readability %.1f)",
            state["topic_title"],
            outcome.upper(),
            report.pass_rate,
            report.readability_score,
        )
        return {**state, "report": report, "issues": list(report.issues), "pass_rates": pass_rates + [report.pass_rate]}

    def expand_node(self, state: GateState) -> GateState:
        return {**state, "amendment": expansion_instruction(state["topic_title"])}

    def next_step(self, state: GateState) -> str:
        report = state.get("report")
        if report is not None and report.passed:
            return END
        if state.get("attempts", 0) >= self.max_attempts:
            return END
        if report is not None and not report.length:
            return "expand"
        return "generate"

    def build_graph(self) -> StateGraph:
        graph = StateGraph(GateState)
        graph.add_node("generate", self.generate_node)
        graph.add_node("check", self.check_node)
        graph.add_node("expand", self.expand_node)
        graph.add_edge(START, "generate")
        graph.add_edge("generate", "check")
        graph.add_conditional_edges("check", self.next_step, ["generate", "expand", END])
        graph.add_edge("expand", "generate")
        return graph

    async def produce_topic(self, topic_title: str, request: Request, context_chunks: Sequence[TextChunk]) -> TopicContent:
        state: GateState = {
            "topic_title": topic_title,
            "request": request,
            "context": list(context_chunks)[: self.max_context_chunks],
            "amendment": None,
            "attempts": 0,
            "pass_rates": [],
        }
        final = await self.graph.ainvoke(state)
        content = final.get("content")
        report = final.get("report")
        attempts = final.get("attempts", 0)
        if content is not None and report is not None and report.passed:
            return replace(content, pass_rate=fmean(final["pass_rates"]), attempts=attempts)
        raise GenerationExhausted(topic_title, attempts, final.get("issues", []))
