"""Sentence-window chunking and word-overlap retrieval with auto-expansion."""
from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import replace
from statistics import fmean

from .models import SourceDocument, TextChunk
from .similarity import word_overlap

logger = logging.getLogger(__name__)

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+|\n+")


def split_sentences(text: str) -> list[str]:
    return [sentence.strip() for sentence in _SENTENCE_BOUNDARY.split(text) if sentence and sentence.strip()]


def chunk(text: str, min_size: int, max_size: int, overlap: int) -> list[str]:
    """Split text into overlapping chunks of whole sentences, sized in words.

    A chunk is closed when the next sentence would push it past ``max_size`` and it
    already holds ``min_size`` words. The following chunk opens with the last
    ``overlap`` words of the closed one.
    """

    if min_size < 0 or max_size < 1 or overlap < 0:
        raise ValueError("chunk sizes must be positive")
    chunks: list[str] = []
    current: list[str] = []
    fresh_sentences = 0
    for sentence in split_sentences(text):
        words = sentence.split()
        if fresh_sentences and len(current) + len(words) > max_size and len(current) >= min_size:
            chunks.append(" ".join(current))
            current = current[-overlap:] if overlap else []
            fresh_sentences = 0
        current.extend(words)
        fresh_sentences += 1
    if fresh_sentences:
        chunks.append(" ".join(current))
    return chunks


class Retriever:
    """Ranks indexed chunks against a query, widening the result set on low confidence."""

    def __init__(
        self,
        min_words: int = 80,
        max_words: int = 250,
        overlap_words: int = 40,
        top_k: int = 6,
        expanded_top_k: int = 12,
        confidence_threshold: float = 0.75,
    ) -> None:
        self.min_words = min_words
        self.max_words = max_words
        self.overlap_words = overlap_words
        self.top_k = top_k
        self.expanded_top_k = expanded_top_k
        self.confidence_threshold = confidence_threshold

    def index(self, documents: Iterable[SourceDocument]) -> list[TextChunk]:
        corpus: list[TextChunk] = []
        ordered = sorted(documents, key=lambda doc: doc.confidence_weight, reverse=True)
        for doc in ordered:
            pieces = chunk(doc.raw_text, self.min_words, self.max_words, self.overlap_words)
            corpus.extend(TextChunk(text=piece, source_url=doc.url, source_kind=doc.kind) for piece in pieces)
        logger.info("Indexed %d chunks from %d documents", len(corpus), len(ordered))
        return corpus

    def retrieve(self, query: str, corpus: Sequence[TextChunk], top_k: int | None = None) -> list[TextChunk]:
        k = top_k if top_k is not None else self.top_k
        scored = [replace(item, score=word_overlap(query, item.text)) for item in corpus]
        scored.sort(key=lambda item: item.score, reverse=True)
        selected = scored[:k]
        if not selected:
            return []
        mean_score = fmean(item.score for item in selected)
        if mean_score < self.confidence_threshold:
            expanded = max(k, self.expanded_top_k)
            logger.debug("Low retrieval confidence %.3f for '%s'; expanding to %d", mean_score, query, expanded)
            return scored[:expanded]
        return selected
