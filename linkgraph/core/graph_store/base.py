"""
Base interface for graph storage.

The store is the sole owner of persisted nodes, edges, edge events and
documents. Components read through `GraphStore.reader` and mutate only
inside `async with store.transaction() as session:`; a transaction is
all-or-nothing.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime

from linkgraph.models.document import Chunk, Document
from linkgraph.models.edge import Edge, EdgeEvent, EdgeFilter, EdgeState
from linkgraph.models.node import LayoutPosition, Node, NodeStatus


class GraphSession(ABC):
    """CRUD and query primitives bound to one connection."""

    # ═══════════════════════════════════════════════════════════
    # NODE OPERATIONS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def get_node(self, node_id: str) -> Node | None:
        """
        Retrieve a node by ID, tombstoned or not.

        Args:
            node_id: Node identifier

        Returns:
            Node or None if not found
        """
        pass

    @abstractmethod
    async def insert_node(self, node: Node) -> None:
        """Insert a new node."""
        pass

    @abstractmethod
    async def update_node_versioned(self, node: Node, expected_version: int) -> bool:
        """
        Write `node` only if the stored version equals `expected_version`.

        Returns:
            True if the row was written, False on version mismatch or missing row
        """
        pass

    @abstractmethod
    async def set_node_embedding(
        self, node_id: str, embedding: list[float] | None, content_hash: str
    ) -> bool:
        """
        Store an embedding if the node content still hashes to `content_hash`.

        Returns:
            True if written, False if content changed meanwhile
        """
        pass

    @abstractmethod
    async def set_node_status(
        self, node_id: str, status: NodeStatus, deleted_at: datetime | None
    ) -> bool:
        """Tombstone or restore a node."""
        pass

    @abstractmethod
    async def set_layout_position(self, node_id: str, position: LayoutPosition | None) -> bool:
        """Store the UI-only layout position."""
        pass

    @abstractmethod
    async def purge_node(self, node_id: str) -> bool:
        """Permanently remove a node row (edges must be removed first)."""
        pass

    @abstractmethod
    async def list_nodes(
        self,
        status: NodeStatus | None = NodeStatus.ACTIVE,
        after_id: str | None = None,
        limit: int | None = None,
    ) -> list[Node]:
        """
        List nodes ordered by id.

        Args:
            status: Filter by status (None for all)
            after_id: Keyset cursor, only ids strictly greater are returned
            limit: Maximum results
        """
        pass

    @abstractmethod
    async def nodes_with_any_tag(
        self, tags: list[str], exclude_id: str | None = None, limit: int | None = None
    ) -> list[Node]:
        """Active nodes sharing at least one of `tags`, most recently updated first."""
        pass

    @abstractmethod
    async def count_nodes(self, status: NodeStatus | None = NodeStatus.ACTIVE) -> int:
        pass

    # ═══════════════════════════════════════════════════════════
    # EDGE OPERATIONS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def get_edge(self, edge_id: str) -> Edge | None:
        pass

    @abstractmethod
    async def get_edge_for_pair(self, a: str, b: str) -> Edge | None:
        """Find the edge for an unordered pair."""
        pass

    @abstractmethod
    async def insert_edge(self, edge: Edge) -> None:
        pass

    @abstractmethod
    async def update_edge(self, edge: Edge) -> None:
        """Overwrite all mutable columns of an existing edge."""
        pass

    @abstractmethod
    async def list_edges(self, edge_filter: EdgeFilter) -> list[Edge]:
        """Edges matching the filter, ordered by score desc then id."""
        pass

    @abstractmethod
    async def edges_for_node(
        self, node_id: str, states: list[EdgeState] | None = None
    ) -> list[Edge]:
        pass

    @abstractmethod
    async def delete_edges_for_node(self, node_id: str) -> int:
        """Remove every edge touching a node. Returns the number removed."""
        pass

    @abstractmethod
    async def count_edges_by_state(self) -> dict[str, int]:
        pass

    # ═══════════════════════════════════════════════════════════
    # EDGE EVENTS (append-only)
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def append_edge_event(self, event: EdgeEvent) -> EdgeEvent:
        """Append an event and return it with its assigned `seq`."""
        pass

    @abstractmethod
    async def list_edge_events(
        self, edge_id: str | None = None, limit: int | None = None
    ) -> list[EdgeEvent]:
        """Events in ascending `seq` order (the most recent `limit` when limited)."""
        pass

    @abstractmethod
    async def count_edge_events(self) -> int:
        pass

    # ═══════════════════════════════════════════════════════════
    # DOCUMENTS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def upsert_document(self, document: Document) -> None:
        """Insert or update the document row (chunks are handled separately)."""
        pass

    @abstractmethod
    async def replace_chunks(self, document_id: str, chunks: list[Chunk]) -> None:
        """Delete all chunks of a document and insert `chunks`."""
        pass

    @abstractmethod
    async def set_chunk_embedding(
        self, chunk_id: str, embedding: list[float], content_hash: str
    ) -> bool:
        pass

    @abstractmethod
    async def get_document(self, document_id: str) -> Document | None:
        """Document with its chunks in order."""
        pass

    @abstractmethod
    async def list_chunks(self, document_id: str | None = None) -> list[Chunk]:
        pass

    @abstractmethod
    async def count_documents(self) -> int:
        pass

    # ═══════════════════════════════════════════════════════════
    # METADATA AND CURSORS
    # ═══════════════════════════════════════════════════════════

    @abstractmethod
    async def get_metadata(self, key: str) -> str | None:
        pass

    @abstractmethod
    async def set_metadata(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def delete_metadata(self, key: str) -> None:
        pass

    @abstractmethod
    async def get_cursor(self, name: str) -> str | None:
        pass

    @abstractmethod
    async def set_cursor(self, name: str, value: str) -> None:
        pass

    @abstractmethod
    async def clear_cursor(self, name: str) -> None:
        pass


class GraphStore(ABC):
    """Abstract base class for graph storage implementations."""

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the graph store (create tables/schema)."""
        pass

    @property
    @abstractmethod
    def reader(self) -> GraphSession:
        """Session for reads outside any transaction (committed data only)."""
        pass

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[GraphSession]:
        """
        Open a write transaction.

        Usage:
            async with store.transaction() as session:
                ...

        Commits on normal exit, rolls back on any exception.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection to the graph store."""
        pass
