"""
Embedder abstraction layer for text embeddings.

Supported providers:
- Ollama (native SDK, local model)
- OpenAI (official SDK, remote API)
- Hash (deterministic offline embedder)
- None (embedding disabled)
"""

from linkgraph.core.embeddings.base import Embedder
from linkgraph.core.embeddings.cache import EmbeddingCache
from linkgraph.core.embeddings.client import EmbeddingClient
from linkgraph.core.embeddings.hashing import HashEmbedder, NullEmbedder
from linkgraph.core.embeddings.ollama import OllamaEmbedder
from linkgraph.core.embeddings.openai import OpenAIEmbedder

__all__ = [
    "Embedder",
    "EmbeddingCache",
    "EmbeddingClient",
    "HashEmbedder",
    "NullEmbedder",
    "OllamaEmbedder",
    "OpenAIEmbedder",
]
