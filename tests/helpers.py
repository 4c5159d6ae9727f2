"""Test helpers shared across test packages."""

from datetime import datetime, timezone

from linkgraph.core.embeddings.base import Embedder
from linkgraph.core.text.tokens import tokenize
from linkgraph.models.node import Node, compute_content_hash
from linkgraph.utils.id_generator import generate_node_id

CONCEPTS = {
    "database": {
        "database", "postgresql", "postgres", "sql", "sqlite", "db", "vector",
        "analytic", "index", "schema", "query",
    },
    "meeting": {"standup", "meeting", "weekly", "note", "agenda", "sync", "retro"},
    "ml": {"model", "training", "learning", "neural", "embedding", "ml"},
    "cooking": {"recipe", "pasta", "sauce", "oven", "bake", "garlic"},
}

BASE_TIME = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class ConceptEmbedder(Embedder):
    """
    Deterministic topic-count embedder.

    Each dimension counts the words of one topic, so similarity between
    test sentences is predictable without a model server.
    """

    model = "concept-test"

    def __init__(self):
        self.calls = 0
        self.dimension = len(CONCEPTS) + 1

    async def embed(self, text: str, **kwargs) -> list[float]:
        self.calls += 1
        vector = [0.0] * self.dimension
        for token, count in tokenize(text).items():
            for index, words in enumerate(CONCEPTS.values()):
                if token in words:
                    vector[index] += count
        if not any(vector):
            vector[-1] = 1.0
        return vector

    async def close(self):
        pass


def make_node(
    title: str,
    tags: list[str] | None = None,
    embedding: list[float] | None = None,
    body: str = "",
    node_id: str | None = None,
    updated_at: datetime | None = None,
) -> Node:
    """Build a Node for store-level tests."""
    timestamp = updated_at or BASE_TIME
    return Node(
        id=node_id or generate_node_id(),
        title=title,
        body=body,
        tags=tags or [],
        content_hash=compute_content_hash(title, body),
        embedding=embedding,
        created_at=timestamp,
        updated_at=timestamp,
    )
