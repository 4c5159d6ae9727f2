"""
Factory for creating embedder providers.
"""

from linkgraph.config import EmbedderConfig
from linkgraph.core.embeddings.base import Embedder
from linkgraph.core.embeddings.client import EmbeddingClient
from linkgraph.core.embeddings.hashing import HashEmbedder, NullEmbedder
from linkgraph.core.embeddings.ollama import OllamaEmbedder
from linkgraph.core.embeddings.openai import OpenAIEmbedder
from linkgraph.utils.exceptions import ConfigurationError


class EmbedderFactory:
    """Factory for creating embedder providers from configuration."""

    @staticmethod
    def create(config: EmbedderConfig) -> Embedder:
        """
        Create embedder from configuration.

        Args:
            config: Embedder configuration

        Returns:
            Embedder instance

        Raises:
            ConfigurationError: If provider is not supported or misconfigured
        """
        if config.provider == "ollama":
            return OllamaEmbedder(
                host=config.base_url,
                model=config.model,
                timeout=config.timeout,
            )
        elif config.provider == "openai":
            if not config.api_key:
                raise ConfigurationError("OpenAI API key is required")
            dimensions = config.dimension if config.model.startswith("text-embedding-3") else None
            return OpenAIEmbedder(
                api_key=config.api_key,
                model=config.model,
                timeout=config.timeout,
                dimensions=dimensions,
            )
        elif config.provider == "hash":
            return HashEmbedder(dimension=config.dimension or 384)
        elif config.provider == "none":
            return NullEmbedder()
        else:
            raise ConfigurationError(f"Unsupported embedder provider: {config.provider}")

    @staticmethod
    def create_client(config: EmbedderConfig) -> EmbeddingClient:
        """Create the embedder and wrap it in a caching, time-bounded client."""
        return EmbeddingClient(EmbedderFactory.create(config), config)
