"""
Result objects returned by the engine facade.
"""

from pydantic import BaseModel, Field

from linkgraph.models.node import Node


class CaptureResult(BaseModel):
    """
    Outcome of capturing or editing a node.

    `embedded` is False when the provider was unavailable; the node is
    still stored and gets linked on a later resweep.
    """

    node_id: str
    version: int
    suggested_edge_ids: list[str] = Field(default_factory=list)
    embedded: bool = False
    degraded_reason: str | None = None


class EditResult(CaptureResult):
    """Edit outcome; carries the stored node after the write."""

    node: Node
    content_changed: bool = False


class ResweepResult(BaseModel):
    """Outcome of a batch auto-link sweep."""

    nodes_processed: int = 0
    edges_created: int = 0
    edges_updated: int = 0
    nodes_embedded: int = 0
    resumed_from: str | None = None

    @property
    def count(self) -> int:
        """Edges created or re-scored."""
        return self.edges_created + self.edges_updated


class GraphStats(BaseModel):
    """Node and edge counts."""

    nodes: int = 0
    deleted_nodes: int = 0
    edges_by_state: dict[str, int] = Field(default_factory=dict)
    edge_events: int = 0
    documents: int = 0


class HealthReport(BaseModel):
    """
    Store and embedding-provider status.

    `status` is "unhealthy" when the store cannot be read, "degraded" when
    embeddings are unavailable, halted or of an unexpected size, and
    "healthy" otherwise.
    """

    status: str = "healthy"
    store_reachable: bool = False
    store_error: str | None = None
    nodes: int = 0
    edges: int = 0
    embedding_model: str
    embedding_available: bool = False
    embedding_error: str | None = None
    # expected size (configured or locked); None until the first vector
    embedding_dimension: int | None = None
    probe_dimension: int | None = None
    halted: bool = False
