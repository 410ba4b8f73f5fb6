"""
Embedding and retrieval layer over the canonical record store.
"""

# Package initialization for vector module
from .embeddings import IEmbeddingProvider, HashedTokenEmbedding, SentenceTransformerEmbedding, tokenize
from .retrieval import RetrievalScorer, cosine_similarity
from .types import ScoredRecord

__all__ = [
    'IEmbeddingProvider',
    'HashedTokenEmbedding',
    'SentenceTransformerEmbedding',
    'tokenize',
    'RetrievalScorer',
    'cosine_similarity',
    'ScoredRecord'
]
