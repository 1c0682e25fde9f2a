import pytest

from conftest import VECTORS_TEXT
from studynotes.models import SourceDocument, TextChunk
from studynotes.retrieval import Retriever, chunk, split_sentences

SENTENCES = [
    "Sentence number {index} talks about vectors and forces in a short way.".format(index=index)
    if index % 3
    else "Sentence number {index} is a much longer sentence that explains how the components of a vector "
    "are found with sine and cosine of the angle it makes with the x axis.".format(index=index)
    for index in range(30)
]
TEXT = " ".join(SENTENCES)


def test_split_sentences_on_punctuation_and_newlines():
    assert split_sentences("One. Two!  Three?\nFour\n\nFive.") == ["One.", "Two!", "Three?", "Four", "Five."]


def test_chunks_reassemble_into_the_source_sentence_sequence():
    overlap = 10
    chunks = chunk(TEXT, min_size=40, max_size=80, overlap=overlap)
    assert len(chunks) > 1

    words = chunks[0].split()
    for piece in chunks[1:]:
        words.extend(piece.split()[overlap:])
    assert " ".join(words) == " ".join(split_sentences(TEXT))


def test_chunks_respect_size_bounds():
    chunks = chunk(TEXT, min_size=40, max_size=80, overlap=10)
    for piece in chunks[:-1]:
        assert 40 <= len(piece.split()) <= 80


def test_chunk_rejects_invalid_sizes():
    with pytest.raises(ValueError):
        chunk(TEXT, min_size=10, max_size=0, overlap=2)
    assert chunk("", 10, 20, 2) == []


def test_index_orders_documents_by_confidence():
    low = SourceDocument(url="web", kind="notes", title="web", raw_text="Low confidence text.", confidence_weight=0.7)
    high = SourceDocument(url="book", kind="textbook", title="book", raw_text="High confidence text.")
    corpus = Retriever(min_words=1, max_words=50, overlap_words=0).index([low, high])
    assert [item.source_url for item in corpus] == ["book", "web"]
    assert all(item.score == 0.0 for item in corpus)


def test_retrieve_returns_top_k_when_confident():
    corpus = [
        TextChunk(text="dot product of two vectors", source_url="a", source_kind="notes"),
        TextChunk(text="equilibrium of forces", source_url="b", source_kind="notes"),
    ]
    results = Retriever(top_k=1).retrieve("dot product of two vectors", corpus)
    assert [item.source_url for item in results] == ["a"]
    assert results[0].score == 1.0


def test_retrieve_expands_on_low_confidence_without_mutating_corpus():
    corpus = Retriever(min_words=10, max_words=20, overlap_words=0).index(
        [SourceDocument(url="book", kind="textbook", title="book", raw_text=VECTORS_TEXT)]
    )
    assert len(corpus) > 12

    results = Retriever().retrieve("cross product torque", corpus)

    assert len(results) == 12
    scores = [item.score for item in results]
    assert scores == sorted(scores, reverse=True)
    assert all(item.score == 0.0 for item in corpus)


def test_explicit_top_k_is_honoured_and_expansion_never_shrinks_it():
    corpus = Retriever(min_words=10, max_words=20, overlap_words=0).index(
        [SourceDocument(url="book", kind="textbook", title="book", raw_text=VECTORS_TEXT)]
    )
    assert len(corpus) > 16
    retriever = Retriever()

    assert retriever.retrieve("cross product torque", corpus, top_k=0) == []
    assert len(retriever.retrieve("cross product torque", corpus, top_k=16)) == 16
