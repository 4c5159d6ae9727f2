"""Shared fixtures for linkgraph tests.

Fixtures use function scope to avoid event loop issues. Every test gets
its own SQLite file under tmp_path, so tests never share state.
"""

import os
from collections.abc import AsyncGenerator
from datetime import timedelta

import pytest

from helpers import BASE_TIME, ConceptEmbedder, make_node
from linkgraph.config import Config, EmbedderConfig, LinkingConfig, StoreConfig
from linkgraph.core.embeddings.client import EmbeddingClient
from linkgraph.core.embeddings.hashing import NullEmbedder
from linkgraph.core.graph_store.sqlite_store import SQLiteGraphStore
from linkgraph.models.node import Node
from linkgraph.services.graph_engine import KnowledgeGraphEngine

# Environment isolation


@pytest.fixture(autouse=True)
def _restore_environ():
    """Restore os.environ after each test (load_dotenv writes into it)."""
    saved = dict(os.environ)
    yield
    os.environ.clear()
    os.environ.update(saved)


# Configuration


@pytest.fixture
def config(tmp_path) -> Config:
    """Test configuration: temp database, no retries, no backoff."""
    return Config(
        embedder=EmbedderConfig(provider="hash", timeout=5.0, max_retries=0, retry_backoff=0.0),
        linking=LinkingConfig(min_score=0.5, top_k=5),
        store=StoreConfig(db_path=str(tmp_path / "graph.db")),
    )


@pytest.fixture
def embedder() -> ConceptEmbedder:
    return ConceptEmbedder()


@pytest.fixture
def embedding_client(embedder, config) -> EmbeddingClient:
    return EmbeddingClient(embedder, config.embedder)


@pytest.fixture
def offline_client(config) -> EmbeddingClient:
    """Client whose provider is always unavailable."""
    return EmbeddingClient(NullEmbedder(), config.embedder)


# Store and engine


@pytest.fixture
async def store(config) -> AsyncGenerator[SQLiteGraphStore, None]:
    graph_store = SQLiteGraphStore(config.store.db_path)
    await graph_store.initialize()
    yield graph_store
    await graph_store.close()


@pytest.fixture
async def engine(config, embedding_client) -> AsyncGenerator[KnowledgeGraphEngine, None]:
    graph_engine = KnowledgeGraphEngine(
        store=SQLiteGraphStore(config.store.db_path),
        embedding_client=embedding_client,
        config=config,
    )
    await graph_engine.initialize()
    yield graph_engine
    await graph_engine.close()


@pytest.fixture
async def offline_engine(config, offline_client) -> AsyncGenerator[KnowledgeGraphEngine, None]:
    graph_engine = KnowledgeGraphEngine(
        store=SQLiteGraphStore(config.store.db_path),
        embedding_client=offline_client,
        config=config,
    )
    await graph_engine.initialize()
    yield graph_engine
    await graph_engine.close()


@pytest.fixture
def sample_nodes() -> list[Node]:
    """Three nodes: two about databases, one about meetings."""
    return [
        make_node("Use PostgreSQL for analytics", ["db"], [1.0, 0.0, 0.0, 0.0, 0.0]),
        make_node(
            "Database selection criteria",
            ["db", "planning"],
            [1.0, 0.0, 0.0, 0.0, 0.0],
            updated_at=BASE_TIME - timedelta(days=1),
        ),
        make_node(
            "Weekly standup notes",
            ["meetings"],
            [0.0, 1.0, 0.0, 0.0, 0.0],
            updated_at=BASE_TIME - timedelta(days=2),
        ),
    ]
