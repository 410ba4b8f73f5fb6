"""
Tests for the windowed chunker.
"""

import pytest

from nexus.core.chunking import chunk_spans, chunk_text


def _reconstruct(text, spans):
    """Concatenate the non-overlapping tail of each span."""
    pieces = []
    covered = 0
    for start, end in spans:
        pieces.append(text[max(start, covered):end])
        covered = end
    return "".join(pieces)


def test_short_text_is_single_chunk():
    assert chunk_text("hello world") == ["hello world"]
    assert chunk_spans("x" * 500) == [(0, 500)]


def test_breaks_after_sentence_terminator():
    text = "a" * 300 + ". " + "b" * 400
    chunks = chunk_text(text)
    assert chunks[0] == "a" * 300 + "."
    assert _reconstruct(text, chunk_spans(text)) == text


def test_breaks_after_newline():
    text = "line one " * 40 + "\n" + "z" * 300
    first = chunk_text(text)[0]
    assert first.endswith("\n")


def test_hard_cut_without_break_characters():
    text = "x" * 1200
    spans = chunk_spans(text)
    assert spans[0] == (0, 500)
    assert spans[1] == (450, 950)
    assert spans[-1][1] == 1200


def test_chunks_overlap_by_configured_amount():
    text = "y" * 1000
    spans = chunk_spans(text, chunk_size=300, overlap=30)
    for (_, prev_end), (start, _) in zip(spans, spans[1:]):
        assert prev_end - start == 30


def test_reconstruction_and_length_bound_on_mixed_text():
    sentences = [f"Sentence number {i} talks about topic {i % 7}!" for i in range(120)]
    text = " ".join(sentences) + "\nTrailing paragraph without terminator " * 20
    spans = chunk_spans(text)

    assert _reconstruct(text, spans) == text
    assert all(end - start <= 501 for start, end in spans)
    assert spans[0][0] == 0 and spans[-1][1] == len(text)


def test_chunks_are_not_trimmed():
    text = "a" * 100 + ".   " + "b" * 600
    chunks = chunk_text(text, chunk_size=500, overlap=0)
    assert chunks[0] == "a" * 100 + "."
    assert chunks[1].startswith("   b")
    assert "".join(chunks) == text


def test_invalid_parameters():
    with pytest.raises(ValueError):
        chunk_spans("text", chunk_size=0)
    with pytest.raises(ValueError):
        chunk_spans("text", chunk_size=10, overlap=10)
    with pytest.raises(ValueError):
        chunk_spans("text", chunk_size=10, overlap=-1)
