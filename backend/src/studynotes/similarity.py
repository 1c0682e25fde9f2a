"""Text normalization and similarity scoring."""
from __future__ import annotations

import re

from rapidfuzz.distance import Levenshtein

_PUNCTUATION = re.compile(r"[^\w\s]")
WORD_WEIGHT = 0.7
EDIT_WEIGHT = 0.3


def normalize(text: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""

    return " ".join(_PUNCTUATION.sub("", text.lower()).split())


def _stem(word: str) -> str:
    if len(word) > 3 and word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


def word_set(text: str) -> set[str]:
    return {_stem(word) for word in normalize(text).split()}


def word_overlap(a: str, b: str) -> float:
    """Jaccard similarity of the unique-word sets."""

    words_a, words_b = word_set(a), word_set(b)
    if not words_a and not words_b:
        return 1.0
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


def edit_similarity(a: str, b: str) -> float:
    """Levenshtein distance mapped to [0, 1] over the normalized strings."""

    left, right = normalize(a), normalize(b)
    longest = max(len(left), len(right))
    if longest == 0:
        return 1.0
    return 1 - Levenshtein.distance(left, right) / longest


def combined_similarity(a: str, b: str) -> float:
    if normalize(a) == normalize(b):
        return 1.0
    return WORD_WEIGHT * word_overlap(a, b) + EDIT_WEIGHT * edit_similarity(a, b)


similarity = combined_similarity
