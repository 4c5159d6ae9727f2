"""
Embedding client: the only way the core obtains vectors.

Wraps an Embedder backend with:
- content-hash caching
- a bounded per-call timeout and retries with exponential backoff
- failure mapping: any backend failure becomes ProviderUnavailable
- dimension enforcement: a vector of the wrong size raises DimensionMismatch
  and halts the client until `reconcile()` is called
"""

import asyncio

from linkgraph.config import EmbedderConfig
from linkgraph.core.embeddings.base import Embedder
from linkgraph.core.embeddings.cache import EmbeddingCache
from linkgraph.utils.exceptions import (
    DimensionMismatch,
    EmbeddingError,
    ProviderUnavailable,
    ValidationError,
)
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)


class EmbeddingClient:
    """Cached, time-bounded access to an embedding backend."""

    def __init__(
        self,
        embedder: Embedder,
        config: EmbedderConfig | None = None,
        cache: EmbeddingCache | None = None,
    ):
        self.embedder = embedder
        self.config = config or EmbedderConfig()
        self.cache = cache if cache is not None else EmbeddingCache(self.config.cache_size)
        self._dimension: int | None = self.config.dimension
        self._halted: DimensionMismatch | None = None

    @property
    def model_id(self) -> str:
        return self.embedder.model_id

    @property
    def dimension(self) -> int | None:
        """Configured or locked dimension; None until the first vector."""
        return self._dimension

    @property
    def halted(self) -> DimensionMismatch | None:
        return self._halted

    def lock_dimension(self, dimension: int) -> None:
        """Pin the expected dimension (e.g. the one already in the store)."""
        if self._dimension is not None and self._dimension != dimension:
            self._halt(DimensionMismatch(self._dimension, dimension, {"source": "store"}))
        self._dimension = dimension

    def ensure_writable(self) -> None:
        """Raise the pending DimensionMismatch, if any."""
        if self._halted is not None:
            raise self._halted

    def reconcile(self, dimension: int | None = None) -> None:
        """
        Clear a dimension halt after the operator fixed the configuration.

        Args:
            dimension: New expected dimension, or None to re-lock on next vector
        """
        logger.warning(
            "Embedding client reconciled",
            extra={"previous": self._dimension, "dimension": dimension},
        )
        self._halted = None
        self._dimension = dimension
        self.cache.clear()

    async def embed(self, text: str) -> list[float]:
        """
        Embed one text.

        Raises:
            ValidationError: Empty text
            ProviderUnavailable: Backend down, erroring or timed out
            DimensionMismatch: Vector size differs from the expected one
        """
        if not text or not text.strip():
            raise ValidationError("Text cannot be empty")
        self.ensure_writable()

        cached = self.cache.get(self.model_id, text)
        if cached is not None:
            return cached

        vector = await self._with_retries(lambda: self.embedder.embed(text), "embed")
        self._check_dimension(vector)
        self.cache.put(self.model_id, text, vector)
        return vector

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """
        Embed many texts, returning vectors in input order.

        Cache hits are served locally; misses go to the backend in batches.
        """
        if not texts:
            return []
        if any(not text or not text.strip() for text in texts):
            raise ValidationError("Texts cannot be empty")
        self.ensure_writable()

        results: list[list[float] | None] = [
            self.cache.get(self.model_id, text) for text in texts
        ]
        missing = [i for i, vector in enumerate(results) if vector is None]
        batch_size = max(1, self.config.batch_size)

        for start in range(0, len(missing), batch_size):
            indices = missing[start : start + batch_size]
            batch = [texts[i] for i in indices]
            vectors = await self._with_retries(
                lambda batch=batch: self.embedder.batch_embed(batch, batch_size=len(batch)),
                "batch_embed",
            )
            if len(vectors) != len(batch):
                raise ProviderUnavailable(
                    "Embedding backend returned a short batch",
                    {"expected": len(batch), "received": len(vectors)},
                )
            for i, vector in zip(indices, vectors):
                self._check_dimension(vector)
                self.cache.put(self.model_id, texts[i], vector)
                results[i] = vector

        return [vector for vector in results if vector is not None]

    async def probe(self, text: str = "test") -> list[float]:
        """
        Embed without the cache, the halt or the dimension lock.

        Used by health checks; the vector is neither cached nor compared.
        """
        return await self._with_retries(lambda: self.embedder.embed(text), "probe")

    async def close(self) -> None:
        await self.embedder.close()

    async def _with_retries(self, call, operation: str):
        attempts = max(0, self.config.max_retries) + 1
        last_error: Exception | None = None

        for attempt in range(attempts):
            try:
                return await asyncio.wait_for(call(), timeout=self.config.timeout)
            except ProviderUnavailable:
                raise
            except ValidationError:
                raise
            except (asyncio.TimeoutError, EmbeddingError, OSError) as e:
                last_error = e
                logger.warning(
                    f"Embedding {operation} failed (attempt {attempt + 1}/{attempts})",
                    extra={"model": self.model_id, "operation": operation, "error": repr(e)},
                )
                if attempt + 1 < attempts and self.config.retry_backoff > 0:
                    await asyncio.sleep(self.config.retry_backoff * 2**attempt)

        raise ProviderUnavailable(
            f"Embedding provider unavailable after {attempts} attempts: {last_error!r}",
            {"model": self.model_id, "operation": operation},
        ) from last_error

    def _check_dimension(self, vector: list[float]) -> None:
        if not vector:
            raise ProviderUnavailable("Embedding backend returned an empty vector")
        if self._dimension is None:
            self._dimension = len(vector)
            logger.info(
                f"Embedding dimension locked at {self._dimension}",
                extra={"model": self.model_id},
            )
            return
        if len(vector) != self._dimension:
            self._halt(DimensionMismatch(self._dimension, len(vector), {"model": self.model_id}))

    def _halt(self, error: DimensionMismatch) -> None:
        self._halted = error
        logger.error(
            f"{error.message}; embedding-dependent writes are blocked",
            extra=error.context,
        )
        raise error
