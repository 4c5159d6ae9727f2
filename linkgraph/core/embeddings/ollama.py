"""
Ollama embedder for a local model server.

Talks to `/api/embed`, which takes a list of inputs, so a batch is a
single request. A model the server does not have is reported as
ProviderUnavailable right away; retrying will not make it appear.
"""

import ollama

from linkgraph.core.embeddings.base import Embedder
from linkgraph.utils.exceptions import EmbeddingError, ProviderUnavailable, ValidationError
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)


class OllamaEmbedder(Embedder):
    """
    Local embeddings through the ollama-python SDK.

    Works with nomic-embed-text, mxbai-embed-large and similar models.
    """

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "nomic-embed-text",
        timeout: float = 30.0,
        keep_alive: str | None = None,
        truncate: bool = True,
    ):
        """
        Initialize Ollama embedder.

        Args:
            host: Ollama server URL
            model: Embedding model name
            timeout: Request timeout in seconds
            keep_alive: How long the server keeps the model loaded (e.g. "5m")
            truncate: Let the server truncate inputs longer than the context
        """
        self.host = host
        self.model = model
        self.timeout = timeout
        self.keep_alive = keep_alive
        self.truncate = truncate
        self._dimension: int | None = None

        self.client = ollama.AsyncClient(host=host, timeout=timeout)

    async def embed(self, text: str, **kwargs) -> list[float]:
        if not text or not text.strip():
            raise ValidationError("Text cannot be empty")
        vectors = await self._embed_inputs([text], **kwargs)
        return vectors[0]

    async def batch_embed(
        self, texts: list[str], batch_size: int = 32, **kwargs
    ) -> list[list[float]]:
        """Embed texts in requests of at most `batch_size` inputs, keeping order."""
        if any(not text or not text.strip() for text in texts):
            raise ValidationError("Texts cannot be empty")

        batch_size = max(1, batch_size)
        vectors: list[list[float]] = []
        for start in range(0, len(texts), batch_size):
            vectors.extend(await self._embed_inputs(texts[start : start + batch_size], **kwargs))
        return vectors

    async def _embed_inputs(self, inputs: list[str], **kwargs) -> list[list[float]]:
        options = {"truncate": self.truncate}
        if self.keep_alive is not None:
            options["keep_alive"] = self.keep_alive
        options.update(kwargs)

        try:
            response = await self.client.embed(model=self.model, input=inputs, **options)
        except ollama.ResponseError as e:
            logger.error(
                "Ollama embedding error",
                extra={"model": self.model, "host": self.host, "status": e.status_code, "error": e.error},
            )
            if e.status_code == 404:
                raise ProviderUnavailable(
                    f"Ollama model {self.model} is not available on {self.host}",
                    {"model": self.model, "host": self.host},
                ) from e
            raise EmbeddingError(
                f"Ollama embedding error: {e.error}", {"status": e.status_code}
            ) from e
        except Exception as e:
            logger.error(
                "Ollama request failed",
                extra={"model": self.model, "host": self.host, "error": str(e)},
            )
            raise EmbeddingError(f"Ollama request failed: {e}") from e

        if not response or "embeddings" not in response:
            raise EmbeddingError("Ollama returned invalid embedding response")

        vectors = [list(vector) for vector in response["embeddings"]]
        if len(vectors) != len(inputs):
            raise EmbeddingError(
                "Ollama returned a short batch",
                {"expected": len(inputs), "received": len(vectors)},
            )
        if vectors and self._dimension is None:
            self._dimension = len(vectors[0])
        return vectors

    async def get_dimension(self) -> int:
        """Embedding dimension, learned from the first response."""
        if self._dimension is None:
            await self.embed("dimension probe")
        return self._dimension

    async def close(self):
        """Nothing to release; the SDK owns its HTTP client."""
        pass
