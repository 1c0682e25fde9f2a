"""Automated quality checks applied to generated topic content."""
from __future__ import annotations

import re

from .config import GenerationSettings
from .models import QualityReport, TopicContent
from .similarity import edit_similarity

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_NON_LETTERS = re.compile(r"[^a-z]")
_WORD = re.compile(r"[a-z]+")
VOWELS = "aeiouy"


def count_words(text: str) -> int:
    return len(text.split())


def count_lines(text: str) -> int:
    return sum(1 for line in text.splitlines() if line.strip())


def count_syllables(word: str) -> int:
    word = _NON_LETTERS.sub("", word.lower())
    if len(word) <= 3:
        return 1
    count = 0
    previous_was_vowel = False
    for char in word:
        is_vowel = char in VOWELS
        if is_vowel and not previous_was_vowel:
            count += 1
        previous_was_vowel = is_vowel
    if word.endswith("e"):
        count -= 1
    return max(1, count)


def grade_level(text: str) -> float | None:
    """Flesch-Kincaid grade level, or None when the text has no sentences."""

    sentences = [sentence for sentence in _SENTENCE_SPLIT.split(text) if sentence.strip()]
    words = text.split()
    if not sentences or not words:
        return None
    words_per_sentence = len(words) / len(sentences)
    syllables_per_word = sum(count_syllables(word) for word in words) / len(words)
    return 0.39 * words_per_sentence + 11.8 * syllables_per_word - 15.59


class QualityChecker:
    """Scores a TopicContent against presence, length, alignment, answer, readability and safety rules."""

    def __init__(self, settings: GenerationSettings | None = None) -> None:
        self.settings = settings or GenerationSettings()

    def check(self, content: TopicContent, expected_topic: str) -> QualityReport:
        issues: list[str] = []
        presence = self.check_presence(content)
        if not presence:
            issues.append("Missing required sections")
        length = self.check_length(content)
        if not length:
            issues.append("Content length does not meet requirements")
        alignment = edit_similarity(content.topic_title, expected_topic) >= self.settings.alignment_threshold
        if not alignment:
            issues.append("Topic does not align with syllabus")
        answers = self.check_answers(content)
        if not answers:
            issues.append("Question answers are inadequate")
        grade, score = self.readability(content.explanation)
        readable = score >= self.settings.min_readability_score
        if not readable:
            issues.append("Content readability is not suitable for target grade level")
        safe = self.check_safety(content)
        if not safe:
            issues.append("Content contains inappropriate material")
        return QualityReport(
            presence=presence,
            length=length,
            syllabus_alignment=alignment,
            answer_check=answers,
            readability_grade=grade,
            readability_score=score,
            readability=readable,
            safety=safe,
            issues=tuple(issues),
        )

    @staticmethod
    def check_presence(content: TopicContent) -> bool:
        required = (
            content.topic_title,
            content.definition,
            content.explanation,
            content.example_detailed,
            content.example_short,
        )
        if any(not value.strip() for value in required):
            return False
        if len(content.questions) != 3:
            return False
        return all(item.question.strip() and item.answer.strip() for item in content.questions)

    def check_length(self, content: TopicContent) -> bool:
        s = self.settings
        definition = count_words(content.definition)
        if not s.definition_words[0] <= definition <= s.definition_words[1]:
            return False
        if count_words(content.explanation) < s.explanation_min_words:
            return False
        if count_lines(content.explanation) < s.explanation_min_lines:
            return False
        detailed = count_words(content.example_detailed)
        if not s.detailed_example_words[0] <= detailed <= s.detailed_example_words[1]:
            return False
        short = count_words(content.example_short)
        return s.short_example_words[0] <= short <= s.short_example_words[1]

    def check_answers(self, content: TopicContent) -> bool:
        if not content.questions:
            return False
        for item in content.questions:
            if count_words(item.answer) < self.settings.answer_min_words:
                return False
            if edit_similarity(item.question, item.answer) > self.settings.answer_max_similarity:
                return False
        return True

    def check_safety(self, content: TopicContent) -> bool:
        parts = [content.definition, content.explanation, content.example_detailed, content.example_short]
        parts.extend(f"{item.question} {item.answer}" for item in content.questions)
        words = set(_WORD.findall(" ".join(parts).lower()))
        return not words.intersection(term.lower() for term in self.settings.blocked_terms)

    def readability(self, text: str) -> tuple[float, float]:
        grade = grade_level(text)
        if grade is None:
            return 0.0, 0.0
        deviation = abs(grade - self.settings.target_grade)
        return grade, min(10.0, max(0.0, 10.0 - deviation))
