"""
Greedy windowed text splitter used by ingestion.
"""

from typing import List, Tuple

BREAK_CHARS = (".", "!", "?", "\n")


def chunk_spans(text: str, chunk_size: int = 500, overlap: int = 50) -> List[Tuple[int, int]]:
    """
    Compute (start, end) offsets of each chunk.

    A window of ``chunk_size`` units starts at the previous chunk's end minus
    ``overlap``. The chunk ends just after the last break character at or
    before the window edge when that character lies past the window start,
    otherwise exactly at the edge. Every span starts before the previous one
    ends, so the non-overlapping tails concatenate back to ``text``.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError("overlap must be in [0, chunk_size)")

    if len(text) <= chunk_size:
        return [(0, len(text))]

    spans = []
    start = 0
    while start < len(text):
        end = start + chunk_size
        if end >= len(text):
            spans.append((start, len(text)))
            break

        # rfind window includes index ``end`` itself, as the break char is kept in the chunk
        break_point = max(text.rfind(ch, start, end + 1) for ch in BREAK_CHARS)
        if break_point > start:
            end = break_point + 1

        spans.append((start, end))
        if end >= len(text):
            break
        start = max(end - overlap, start + 1)

    return spans


def chunk_text(text: str, chunk_size: int = 500, overlap: int = 50) -> List[str]:
    """Split text into overlapping chunks. Chunks are not trimmed."""
    return [text[start:end] for start, end in chunk_spans(text, chunk_size, overlap)]
