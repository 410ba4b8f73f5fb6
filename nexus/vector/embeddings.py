"""
Text embeddings for retrieval.
Offline hashed-token vectors by default; sentence-transformers when configured.
"""

from abc import ABC, abstractmethod
import hashlib
import re
import numpy as np

_PUNCTUATION = re.compile(r"[^\w\s]")


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    def embed_text(self, text: str) -> list[float]:
        """Generate embedding vector for given text."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass


def tokenize(text: str) -> list[str]:
    """Lower-case, strip punctuation and split on whitespace."""
    return _PUNCTUATION.sub("", text.lower()).split()


class HashedTokenEmbedding(IEmbeddingProvider):
    """Deterministic bag-of-words embedding.

    Each token is hashed into one of ``dimension`` buckets and counted, then the
    vector is L2-normalized. No model and no network, so retrieval works with
    zero external services. It only captures shared vocabulary, not meaning.
    """

    def __init__(self, dimension: int = 128):
        if dimension < 1:
            raise ValueError("dimension must be >= 1")
        self.dimension = dimension

    def _bucket(self, token: str) -> int:
        # md5 instead of hash() so buckets are stable across processes
        digest = hashlib.md5(token.encode("utf-8")).hexdigest()
        return int(digest[:8], 16) % self.dimension

    def embed_text(self, text: str) -> list[float]:
        """Generate deterministic embedding vector from token buckets."""
        vector = np.zeros(self.dimension, dtype=np.float64)
        for token in tokenize(text):
            vector[self._bucket(token)] += 1.0

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector = vector / norm
        return vector.tolist()

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.dimension


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models."""

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self.model_name = model_name
        self._model = None
        self._dimension = None

    @property
    def model(self):
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError:
                raise ImportError(
                    "sentence-transformers not installed. Install the 'semantic' extra."
                )
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed_text(self, text: str) -> list[float]:
        """Generate a normalized embedding vector using sentence transformers."""
        embedding = self.model.encode(text, convert_to_tensor=False, normalize_embeddings=True)
        return [float(v) for v in embedding]

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        if self._dimension is None:
            self._dimension = int(self.model.get_sentence_embedding_dimension())
        return self._dimension
