"""
Retrieval result types.
"""

from dataclasses import dataclass

from ..core.schema import MemoryRecord


@dataclass
class ScoredRecord:
    """A record matched by the retrieval scorer."""

    record: MemoryRecord
    """The matching record"""

    score: float
    """Cosine similarity plus recency and tag bonuses"""

    similarity: float
    """Raw cosine similarity component"""
