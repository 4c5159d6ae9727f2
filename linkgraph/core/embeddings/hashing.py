"""
Deterministic offline embedders.

HashEmbedder maps tokens into a fixed number of buckets (FNV-1a hash) and
L2-normalizes the result. Useful for CI and air-gapped setups: identical
text always yields the identical vector, and texts sharing words are close.

NullEmbedder is the `none` provider: every call reports the provider as
unavailable, so the engine runs on tag-only scoring.
"""

import numpy as np

from linkgraph.core.embeddings.base import Embedder
from linkgraph.core.text.tokens import tokenize
from linkgraph.utils.exceptions import ProviderUnavailable, ValidationError

_FNV_OFFSET = 2166136261
_FNV_PRIME = 16777619


def _fnv1a(token: str) -> int:
    h = _FNV_OFFSET
    for char in token.encode("utf-8"):
        h ^= char
        h = (h * _FNV_PRIME) & 0xFFFFFFFF
    return h


class HashEmbedder(Embedder):
    """Token-hashing embedder with a fixed dimension."""

    def __init__(self, dimension: int = 384):
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.dimension = dimension
        self.model = f"hash-{dimension}"

    async def embed(self, text: str, **kwargs) -> list[float]:
        if not text or not text.strip():
            raise ValidationError("Text cannot be empty")

        vector = np.zeros(self.dimension, dtype=np.float64)
        for token, count in tokenize(text).items():
            vector[_fnv1a(token) % self.dimension] += count

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector.tolist()

    async def get_dimension(self) -> int:
        return self.dimension

    async def close(self):
        pass


class NullEmbedder(Embedder):
    """Embedding disabled."""

    model = "none"

    async def embed(self, text: str, **kwargs) -> list[float]:
        raise ProviderUnavailable("Embedding provider is disabled", {"provider": "none"})

    async def get_dimension(self) -> int:
        raise ProviderUnavailable("Embedding provider is disabled", {"provider": "none"})

    async def close(self):
        pass
