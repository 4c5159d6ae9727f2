"""
Embedding backend interface.

Backends turn node and query text into vectors. They are a closed set
(ollama, openai, hash, none) selected by configuration, and nothing above
EmbeddingClient knows which one is active.
"""

from abc import ABC, abstractmethod


class Embedder(ABC):
    """
    Abstract base for embedding backends.

    Error contract:
    - ValidationError for empty input
    - ProviderUnavailable for failures a retry cannot fix (unknown model,
      bad credentials, disabled provider)
    - EmbeddingError for everything else; EmbeddingClient retries these
    """

    model: str = ""

    @property
    def model_id(self) -> str:
        """Backend plus model; part of every embedding cache key."""
        return f"{type(self).__name__}:{self.model}"

    @abstractmethod
    async def embed(self, text: str, **kwargs) -> list[float]:
        """
        Embed one text.

        Args:
            text: Node or query text
            **kwargs: Backend-specific request options

        Returns:
            Embedding vector
        """

    async def batch_embed(
        self, texts: list[str], batch_size: int = 32, **kwargs
    ) -> list[list[float]]:
        """
        Embed several texts, returning vectors in input order.

        The default issues one `embed` call per text; backends with a
        native batch endpoint override it.
        """
        return [await self.embed(text, **kwargs) for text in texts]

    async def get_dimension(self) -> int:
        """Vector size, found by embedding a probe text unless overridden."""
        return len(await self.embed("dimension probe"))

    @abstractmethod
    async def close(self):
        """Release network clients."""
