"""Deterministic placeholder content used when generation is exhausted."""
from __future__ import annotations

from .models import ExamQuestion, Request, TopicContent

FALLBACK_LABEL = "[Fallback content]"


def fallback_topic(topic: str, request: Request) -> TopicContent:
    """Build clearly labelled topic content from the topic and request alone."""

    subject = request.subject
    chapter = request.chapter_name
    explanation_lines = [
        f"{FALLBACK_LABEL} Automatic generation did not pass the quality checks for this topic.",
        f"{topic} is part of the chapter {chapter} in {subject} for class {request.class_level} ({request.board}).",
        f"Start by reading the definition of {topic} in your textbook and write it in your own words.",
        f"Identify the key terms used in {topic} and note the unit or symbol for each one.",
        f"Connect {topic} with the earlier topics of {chapter} to see how the ideas build on each other.",
        f"Work through the solved examples for {topic} and check every step of the method.",
        f"Practise the end-of-chapter questions on {topic} and compare your answers with the key.",
        f"Review the common mistakes students make with {topic} before attempting past papers.",
    ]
    return TopicContent(
        topic_title=topic,
        definition=f"{FALLBACK_LABEL} {topic} is a concept in {subject} covered in the chapter {chapter}.",
        explanation="\n".join(explanation_lines),
        example_detailed=(
            f"{FALLBACK_LABEL} Look for an everyday situation where {topic} applies, describe what happens, "
            f"and explain it using the ideas from {chapter}."
        ),
        example_short=f"{FALLBACK_LABEL} {topic} appears in daily life.",
        questions=(
            ExamQuestion(
                difficulty="easy",
                question=f"What is {topic}?",
                answer=f"{topic} is a core idea of {chapter} that you should define using the textbook wording.",
            ),
            ExamQuestion(
                difficulty="medium",
                question=f"How is {topic} applied in practical situations?",
                answer=f"Describe a real situation, name the quantities involved, and apply the rules of {topic}.",
            ),
            ExamQuestion(
                difficulty="hard",
                question=f"Solve a past-paper problem that uses {topic}.",
                answer=f"List the given data, choose the relation from {chapter}, substitute values, and state units.",
            ),
        ),
        pass_rate=0.0,
        attempts=0,
        is_fallback=True,
    )
