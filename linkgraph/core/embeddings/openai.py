"""
OpenAI embedder (and OpenAI-compatible endpoints via `base_url`).

Permanent failures (bad key, unknown model, rejected input) surface as
ProviderUnavailable so the client does not retry them; transient ones
(rate limits, connection errors) stay EmbeddingError and are retried.
"""

import openai
from openai import AsyncOpenAI

from linkgraph.core.embeddings.base import Embedder
from linkgraph.utils.exceptions import EmbeddingError, ProviderUnavailable, ValidationError
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)

_PERMANENT_ERRORS = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.NotFoundError,
    openai.BadRequestError,
)

# Native output sizes; text-embedding-3 models can be shortened via `dimensions`
_MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

MAX_INPUTS_PER_REQUEST = 2048


class OpenAIEmbedder(Embedder):
    """Remote embeddings through the official OpenAI SDK."""

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        organization: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
        dimensions: int | None = None,
    ):
        """
        Initialize OpenAI embedder.

        Args:
            api_key: OpenAI API key
            model: Embedding model name
            organization: Optional organization ID
            base_url: Optional OpenAI-compatible endpoint
            timeout: Request timeout in seconds
            dimensions: Shortened output size (text-embedding-3 models only)
        """
        if dimensions is not None and not model.startswith("text-embedding-3"):
            raise ValidationError(
                f"Model {model} does not support custom dimensions", {"model": model}
            )
        self.model = model
        self.dimensions = dimensions

        # retries are owned by EmbeddingClient
        self.client = AsyncOpenAI(
            api_key=api_key,
            organization=organization,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    @property
    def model_id(self) -> str:
        suffix = f"@{self.dimensions}" if self.dimensions else ""
        return f"{type(self).__name__}:{self.model}{suffix}"

    async def embed(self, text: str, **kwargs) -> list[float]:
        if not text or not text.strip():
            raise ValidationError("Text cannot be empty")
        vectors = await self._create([text], **kwargs)
        return vectors[0]

    async def batch_embed(
        self, texts: list[str], batch_size: int = MAX_INPUTS_PER_REQUEST, **kwargs
    ) -> list[list[float]]:
        """Embed texts with the native batch API, keeping input order."""
        if any(not text or not text.strip() for text in texts):
            raise ValidationError("Texts cannot be empty")

        batch_size = max(1, min(batch_size, MAX_INPUTS_PER_REQUEST))
        vectors: list[list[float]] = []
        for start in range(0, len(texts), batch_size):
            vectors.extend(await self._create(texts[start : start + batch_size], **kwargs))
        return vectors

    async def _create(self, inputs: list[str], **kwargs) -> list[list[float]]:
        if self.dimensions is not None:
            kwargs.setdefault("dimensions", self.dimensions)

        try:
            response = await self.client.embeddings.create(
                model=self.model, input=inputs, **kwargs
            )
        except _PERMANENT_ERRORS as e:
            logger.error(
                "OpenAI rejected the embedding request",
                extra={"model": self.model, "error_type": type(e).__name__, "error": str(e)},
            )
            raise ProviderUnavailable(
                f"OpenAI rejected the embedding request: {type(e).__name__}",
                {"model": self.model},
            ) from e
        except Exception as e:
            logger.error(
                "OpenAI embedding error",
                extra={
                    "model": self.model,
                    "num_texts": len(inputs),
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
            )
            raise EmbeddingError(f"OpenAI embedding error: {e}") from e

        if not response.data or len(response.data) != len(inputs):
            raise EmbeddingError(
                "OpenAI returned an incomplete embedding response",
                {"expected": len(inputs), "received": len(response.data or [])},
            )
        return [item.embedding for item in sorted(response.data, key=lambda item: item.index)]

    async def get_dimension(self) -> int:
        """Known size for OpenAI models, a probe request otherwise."""
        if self.dimensions is not None:
            return self.dimensions
        if self.model in _MODEL_DIMENSIONS:
            return _MODEL_DIMENSIONS[self.model]
        return await super().get_dimension()

    async def close(self):
        await self.client.close()
