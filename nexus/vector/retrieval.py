"""
Ranking of stored records against a query vector.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional
import numpy as np

from ..core.schema import MemoryRecord
from .types import ScoredRecord

RECENCY_WINDOW = timedelta(days=1)
RECENCY_BONUS = 0.05
TAG_BONUS = 0.2
SCORE_THRESHOLD = 0.2


def cosine_similarity(a, b) -> float:
    """Cosine similarity; zero vectors score 0."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    norm = np.linalg.norm(a) * np.linalg.norm(b)
    if norm == 0:
        return 0.0
    return float(np.dot(a, b) / norm)


class RetrievalScorer:
    """Scores records by similarity with recency and tag boosts.

    Pure ranking: records are never modified here. Touching
    ``last_accessed_at`` on hits is the caller's job.
    """

    def __init__(self, threshold: float = SCORE_THRESHOLD,
                 recency_bonus: float = RECENCY_BONUS, tag_bonus: float = TAG_BONUS):
        self.threshold = threshold
        self.recency_bonus = recency_bonus
        self.tag_bonus = tag_bonus

    def score(self, query_vector, record: MemoryRecord, query_text: str, now: datetime) -> ScoredRecord:
        similarity = cosine_similarity(query_vector, record.embedding)
        score = similarity

        if now - record.created_at < RECENCY_WINDOW:
            score += self.recency_bonus

        query_lower = query_text.lower()
        for tag in record.tags:
            if tag.lower() in query_lower:
                score += self.tag_bonus

        return ScoredRecord(record=record, score=score, similarity=similarity)

    def search(self, query_vector, records: Iterable[MemoryRecord], limit: int,
               query_text: str = "", now: Optional[datetime] = None) -> List[ScoredRecord]:
        """Rank records and return the top ``limit`` scoring above the threshold.

        Args:
            query_vector: Embedded query
            records: Candidate records in insertion order
            limit: Maximum number of results
            query_text: Raw query, used for tag matching
            now: Reference time for the recency bonus

        Returns:
            ScoredRecord list sorted by descending score, ties in insertion order
        """
        if limit <= 0:
            return []
        now = now or datetime.now(timezone.utc)

        scored = [self.score(query_vector, record, query_text, now) for record in records]
        kept = [s for s in scored if s.score > self.threshold]

        # sorted() is stable, so equal scores keep insertion order
        ranked = sorted(kept, key=lambda s: s.score, reverse=True)
        return ranked[:limit]
