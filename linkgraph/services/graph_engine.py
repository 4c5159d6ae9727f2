"""
Knowledge Graph Engine - the in-process API of linkgraph.

Brings together:
- Embedding client (cached, time-bounded, with tag-only fallback)
- Auto-linker (hybrid scoring, suggested edges)
- Edge state machine (accept/reject/undo/promote/sweep + audit log)
- Query evaluator (tag filters + similarity ranking)
- Concurrency controller (keyed locks, optimistic versions)
- Graph store (SQLite)

Presentation layers (CLI, TUI, REST) call these methods; nothing here
knows about transport.
"""

from linkgraph.config import Config
from linkgraph.core.concurrency.controller import ConcurrencyController
from linkgraph.core.embeddings.client import EmbeddingClient
from linkgraph.core.factory.embedder_factory import EmbedderFactory
from linkgraph.core.factory.graph_factory import GraphStoreFactory
from linkgraph.core.graph_store.base import GraphStore
from linkgraph.core.linking.auto_linker import AutoLinker, LinkResult
from linkgraph.core.moderation.edge_state_machine import EdgeStateMachine
from linkgraph.core.query.evaluator import QueryEvaluator
from linkgraph.core.text.tokens import extract_hashtags, pick_title
from linkgraph.models.document import Document, ScoredChunk
from linkgraph.models.edge import (
    BatchResult,
    Edge,
    EdgeEvent,
    EdgeFilter,
    EdgeState,
    ExplainResult,
)
from linkgraph.models.node import (
    LayoutPosition,
    Node,
    NodeChanges,
    NodeStatus,
    ScoredNode,
    compute_content_hash,
    normalize_tags,
)
from linkgraph.models.query import QueryNode
from linkgraph.models.results import (
    CaptureResult,
    EditResult,
    GraphStats,
    HealthReport,
    ResweepResult,
)
from linkgraph.services.document_service import DocumentService
from linkgraph.utils.datetime_utils import utc_now
from linkgraph.utils.exceptions import (
    DimensionMismatch,
    EditConflict,
    NotFoundError,
    ProviderUnavailable,
    StoreError,
    ValidationError,
)
from linkgraph.utils.id_generator import generate_node_id
from linkgraph.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

DIMENSION_KEY = "embedding_dimension"
MODEL_KEY = "embedding_model"
RESWEEP_CURSOR = "resweep_auto_links"
RESWEEP_PAGE_SIZE = 100


class KnowledgeGraphEngine:
    """
    Knowledge graph engine integrating all components.

    Features:
    - Capture and versioned editing of nodes
    - Automatic edge suggestions with explainable scores
    - Moderation with undo and an append-only audit trail
    - Hybrid tag/similarity search
    - Long-form documents split into searchable chunks
    - Health checks for the store and the embedding provider
    """

    def __init__(
        self,
        store: GraphStore,
        embedding_client: EmbeddingClient,
        config: Config | None = None,
    ):
        """
        Initialize the engine.

        Args:
            store: Graph store (sole owner of persisted data)
            embedding_client: Embedding capability
            config: Configuration object
        """
        self.store = store
        self.embeddings = embedding_client
        self.config = config or Config()

        self.concurrency = ConcurrencyController(store)
        self.linker = AutoLinker(store, self.config.linking)
        self.moderation = EdgeStateMachine(store, self.config.moderation)
        self.query = QueryEvaluator(store, embedding_client, self.config.query)
        self.documents = DocumentService(store, embedding_client, self.config.documents)

    @classmethod
    def from_config(cls, config: Config, configure_logging: bool = True) -> "KnowledgeGraphEngine":
        """
        Build the store and embedding client from configuration.

        Args:
            config: Configuration object
            configure_logging: Install the loguru sinks from `config.logging`
        """
        if configure_logging:
            setup_logging(**config.logging.model_dump())
        return cls(
            store=GraphStoreFactory.create(config.store),
            embedding_client=EmbedderFactory.create_client(config.embedder),
            config=config,
        )

    async def initialize(self) -> None:
        """Initialize the store and reconcile the embedding dimension with it."""
        logger.info("Initializing Knowledge Graph Engine")

        await self.store.initialize()
        logger.info("Graph store initialized")

        stored = await self.store.reader.get_metadata(DIMENSION_KEY)
        if stored is not None:
            try:
                self.embeddings.lock_dimension(int(stored))
            except DimensionMismatch:
                # client stays halted; embedding-dependent writes fail until reconciled
                logger.error(
                    "Stored embeddings do not match the configured dimension",
                    extra={"stored": stored, "configured": self.config.embedder.dimension},
                )

        logger.info("Knowledge Graph Engine ready")

    async def close(self) -> None:
        """Close all connections."""
        await self.embeddings.close()
        await self.store.close()
        logger.info("Knowledge Graph Engine closed")

    # ═══════════════════════════════════════════════════════════
    # NODES
    # ═══════════════════════════════════════════════════════════

    async def capture_node(
        self,
        title: str | None,
        body: str = "",
        tags: list[str] | None = None,
        author_id: str | None = None,
    ) -> CaptureResult:
        """
        Capture a node, embed it and generate suggested edges.

        Capture succeeds when the embedding provider is down; the node is
        stored without an embedding and linked on tags and recency only.

        Args:
            title: Title (first body line when empty)
            body: Body text; `#hashtags` are added to the tags
            tags: Tags
            author_id: Optional author

        Returns:
            CaptureResult with the new id and suggested edge ids

        Raises:
            ValidationError: Both title and body empty
            DimensionMismatch: Embedding configuration drifted (writes blocked)
        """
        if not (title or "").strip() and not body.strip():
            raise ValidationError("Node needs a title or a body")

        title = pick_title(body, title)
        tags = normalize_tags(list(tags or []) + extract_hashtags(body))
        content_hash = compute_content_hash(title, body)

        embedding, degraded_reason = await self._embed_text(f"{title}\n{body}".strip())

        now = utc_now()
        node = Node(
            id=generate_node_id(),
            title=title,
            body=body,
            tags=tags,
            content_hash=content_hash,
            embedding=embedding,
            author_id=author_id,
            created_at=now,
            updated_at=now,
        )

        async with self.store.transaction() as session:
            await session.insert_node(node)
            if embedding is not None:
                await self._record_dimension(session, len(embedding))

        logger.info(
            f"Node captured: {node.id}",
            extra={"node_id": node.id, "tags": len(tags), "embedded": embedding is not None},
        )

        link = await self._link(node.id)
        return CaptureResult(
            node_id=node.id,
            version=node.version,
            suggested_edge_ids=link.suggested_edge_ids,
            embedded=embedding is not None,
            degraded_reason=degraded_reason,
        )

    async def edit_node(
        self, node_id: str, version: int, changes: NodeChanges | dict
    ) -> EditResult:
        """
        Edit a node under optimistic concurrency.

        Content changes invalidate the embedding, re-embed and re-link.

        Args:
            node_id: Node to edit
            version: Version the caller read
            changes: Fields to change

        Returns:
            EditResult with the stored node

        Raises:
            EditConflict: `version` is stale; carries the current node
            NotFoundError: Node missing or deleted
        """
        if isinstance(changes, dict):
            changes = NodeChanges(**changes)

        current = await self.concurrency.check_version(node_id, version)
        if changes.is_empty():
            return EditResult(
                node_id=node_id,
                version=current.version,
                embedded=current.has_embedding,
                node=current,
            )

        title = changes.title if changes.title is not None else current.title
        body = changes.body if changes.body is not None else current.body
        title = pick_title(body, title)
        tags = changes.tags if changes.tags is not None else current.tags
        if changes.body is not None:
            tags = normalize_tags(list(tags) + extract_hashtags(body))

        content_hash = compute_content_hash(title, body)
        content_changed = content_hash != current.content_hash
        tags_changed = tags != current.tags

        embedding, degraded_reason = current.embedding, None
        if content_changed:
            self.embeddings.cache.invalidate(self.embeddings.model_id, current.embedding_text)
            embedding, degraded_reason = await self._embed_text(f"{title}\n{body}".strip())

        def apply(node: Node) -> Node:
            return node.model_copy(
                update={
                    "title": title,
                    "body": body,
                    "tags": tags,
                    "content_hash": content_hash,
                    "embedding": embedding,
                }
            )

        async with self.concurrency.node_lock(node_id):
            updated = await self.concurrency.versioned_write(node_id, version, apply)

        logger.info(
            f"Node edited: {node_id}",
            extra={"node_id": node_id, "version": updated.version, "content_changed": content_changed},
        )

        suggested: list[str] = []
        if content_changed or tags_changed:
            suggested = (await self._link(node_id)).suggested_edge_ids

        return EditResult(
            node_id=node_id,
            version=updated.version,
            suggested_edge_ids=suggested,
            embedded=updated.has_embedding,
            degraded_reason=degraded_reason,
            node=updated,
            content_changed=content_changed,
        )

    async def get_node(self, node_id: str) -> Node:
        """
        Retrieve a node, tombstoned or not.

        Raises:
            NotFoundError: Node does not exist
        """
        node = await self.store.reader.get_node(node_id)
        if node is None:
            raise NotFoundError(f"Node {node_id} not found", {"node_id": node_id})
        return node

    async def get_node_connections(
        self, node_id: str, states: list[EdgeState] | None = None
    ) -> list[Edge]:
        """
        Edges touching a node, best score first.

        Args:
            node_id: Node
            states: Edge states to include (accepted and suggested by default)
        """
        await self.get_node(node_id)
        states = states or [EdgeState.ACCEPTED, EdgeState.SUGGESTED]
        return await self.store.reader.edges_for_node(node_id, states)

    async def delete_node(self, node_id: str, version: int) -> Node:
        """
        Tombstone a node. Its edges are kept so references still resolve.

        Raises:
            EditConflict: `version` is stale
            NotFoundError: Node missing or already deleted
        """
        async with self.concurrency.node_lock(node_id):
            async with self.store.transaction() as session:
                current = await session.get_node(node_id)
                if current is None or not current.is_active:
                    raise NotFoundError(f"Node {node_id} not found", {"node_id": node_id})
                if current.version != version:
                    raise EditConflict(node_id, version, current)
                await session.set_node_status(node_id, NodeStatus.DELETED, utc_now())
                node = await session.get_node(node_id)

        logger.info(f"Node deleted: {node_id}", extra={"node_id": node_id})
        return node

    async def restore_node(self, node_id: str) -> Node:
        """Bring a tombstoned node back."""
        async with self.concurrency.node_lock(node_id):
            async with self.store.transaction() as session:
                current = await session.get_node(node_id)
                if current is None:
                    raise NotFoundError(f"Node {node_id} not found", {"node_id": node_id})
                if current.is_active:
                    return current
                await session.set_node_status(node_id, NodeStatus.ACTIVE, None)
                node = await session.get_node(node_id)

        logger.info(f"Node restored: {node_id}", extra={"node_id": node_id})
        return node

    async def purge_node(self, node_id: str) -> int:
        """
        Permanently remove a node and every edge touching it.

        Edge events are kept as the audit trail.

        Returns:
            Number of edges removed
        """
        async with self.concurrency.node_lock(node_id):
            async with self.store.transaction() as session:
                current = await session.get_node(node_id)
                if current is None:
                    raise NotFoundError(f"Node {node_id} not found", {"node_id": node_id})
                removed = await session.delete_edges_for_node(node_id)
                await session.purge_node(node_id)

        self.embeddings.cache.invalidate(self.embeddings.model_id, current.embedding_text)
        logger.info(f"Node purged: {node_id}", extra={"node_id": node_id, "edges_removed": removed})
        return removed

    async def set_layout_position(self, node_id: str, x: float, y: float) -> Node:
        """Store a UI-only position. Not versioned, never used for scoring."""
        async with self.store.transaction() as session:
            if not await session.set_layout_position(node_id, LayoutPosition(x=x, y=y)):
                raise NotFoundError(f"Node {node_id} not found", {"node_id": node_id})
            return await session.get_node(node_id)

    # ═══════════════════════════════════════════════════════════
    # SEARCH
    # ═══════════════════════════════════════════════════════════

    async def search(self, query: str | QueryNode, limit: int | None = None) -> list[ScoredNode]:
        """
        Run a hybrid query, e.g. `tag:ml AND "vector db"`.

        Raises:
            QueryParseError: Malformed query
        """
        return await self.query.search(query, limit)

    # ═══════════════════════════════════════════════════════════
    # EDGES
    # ═══════════════════════════════════════════════════════════

    async def list_suggested_edges(self, edge_filter: EdgeFilter | None = None) -> list[Edge]:
        """Edges matching the filter (suggested ones by default)."""
        return await self.store.reader.list_edges(edge_filter or EdgeFilter())

    async def accept_edge(self, edge_id: str, actor: str, reason: str | None = None) -> Edge:
        return await self.moderation.accept(edge_id, actor, reason)

    async def reject_edge(self, edge_id: str, actor: str, reason: str | None = None) -> Edge:
        return await self.moderation.reject(edge_id, actor, reason)

    async def undo_edge(self, edge_id: str, actor: str) -> Edge:
        return await self.moderation.undo(edge_id, actor)

    async def promote_edges(self, edge_filter: EdgeFilter, actor: str) -> BatchResult:
        return await self.moderation.promote(edge_filter, actor)

    async def sweep_edges(
        self, edge_filter: EdgeFilter, actor: str, reason: str | None = None
    ) -> BatchResult:
        return await self.moderation.sweep(edge_filter, actor, reason)

    async def list_edge_events(
        self, edge_id: str | None = None, limit: int | None = None
    ) -> list[EdgeEvent]:
        """Audit trail, oldest first."""
        return await self.store.reader.list_edge_events(edge_id, limit)

    async def explain_edge(self, edge_id: str) -> ExplainResult:
        """
        Stored score breakdown next to a fresh recomputation.

        Raises:
            NotFoundError: Edge or one of its nodes does not exist
        """
        edge = await self.store.reader.get_edge(edge_id)
        if edge is None:
            raise NotFoundError(f"Edge {edge_id} not found", {"edge_id": edge_id})

        source = await self.get_node(edge.source_id)
        target = await self.get_node(edge.target_id)
        score, breakdown = self.linker.scorer.score(source, target)

        return ExplainResult(
            edge=edge,
            stored=edge.breakdown,
            current=breakdown,
            current_score=score,
            min_score=self.config.linking.min_score,
            would_suggest=score >= self.config.linking.min_score,
        )

    async def resweep_auto_links(
        self, node_id: str | None = None, force_reevaluate: bool = False
    ) -> ResweepResult:
        """
        Re-run auto-linking for one node, or for all active nodes.

        Idempotent: unchanged nodes produce no new edges and leave scores
        as they are. Nodes missing an embedding are embedded first. A full
        sweep records its position after every node, so a killed run
        resumes after the last completed node.

        Args:
            node_id: Single node, or None for the whole graph
            force_reevaluate: Re-suggest rejected pairs

        Returns:
            ResweepResult; `count` is the number of edges created or re-scored
        """
        result = ResweepResult()

        if node_id is not None:
            node = await self.get_node(node_id)
            if node.is_active:
                await self._sweep_node(node, force_reevaluate, result)
            return result

        cursor = await self.store.reader.get_cursor(RESWEEP_CURSOR)
        result.resumed_from = cursor
        if cursor is not None:
            logger.info(f"Resuming auto-link sweep after {cursor}")

        while True:
            page = await self.store.reader.list_nodes(
                status=NodeStatus.ACTIVE, after_id=cursor, limit=RESWEEP_PAGE_SIZE
            )
            if not page:
                break
            for node in page:
                await self._sweep_node(node, force_reevaluate, result)
                cursor = node.id
                async with self.store.transaction() as session:
                    await session.set_cursor(RESWEEP_CURSOR, cursor)
            if len(page) < RESWEEP_PAGE_SIZE:
                break

        async with self.store.transaction() as session:
            await session.clear_cursor(RESWEEP_CURSOR)

        logger.info(
            "Auto-link sweep complete",
            extra={
                "nodes": result.nodes_processed,
                "created": result.edges_created,
                "updated": result.edges_updated,
                "embedded": result.nodes_embedded,
            },
        )
        return result

    # ═══════════════════════════════════════════════════════════
    # DOCUMENTS
    # ═══════════════════════════════════════════════════════════

    async def capture_document(
        self,
        title: str | None,
        body: str,
        tags: list[str] | None = None,
        document_id: str | None = None,
    ) -> Document:
        """Capture (or re-capture, replacing chunks) a long-form document."""
        return await self.documents.capture(title, body, tags, document_id=document_id)

    async def get_document(self, document_id: str) -> Document:
        return await self.documents.get(document_id)

    async def search_chunks(self, query: str, limit: int = 10) -> list[ScoredChunk]:
        return await self.documents.search_chunks(query, limit)

    # ═══════════════════════════════════════════════════════════
    # MAINTENANCE
    # ═══════════════════════════════════════════════════════════

    async def stats(self) -> GraphStats:
        """Node, edge, event and document counts."""
        reader = self.store.reader
        return GraphStats(
            nodes=await reader.count_nodes(NodeStatus.ACTIVE),
            deleted_nodes=await reader.count_nodes(NodeStatus.DELETED),
            edges_by_state=await reader.count_edges_by_state(),
            edge_events=await reader.count_edge_events(),
            documents=await reader.count_documents(),
        )

    async def health(self) -> HealthReport:
        """
        Check store connectivity and embedding-provider availability.

        The provider is probed with a live request, so this reports an
        outage even before any write has hit it.
        """
        report = HealthReport(
            embedding_model=self.embeddings.model_id,
            embedding_dimension=self.embeddings.dimension,
            halted=self.embeddings.halted is not None,
        )

        try:
            reader = self.store.reader
            report.nodes = await reader.count_nodes(NodeStatus.ACTIVE)
            report.edges = sum((await reader.count_edges_by_state()).values())
            report.store_reachable = True
        except StoreError as e:
            report.store_error = e.message

        try:
            vector = await self.embeddings.probe()
            report.embedding_available = True
            report.probe_dimension = len(vector)
        except ProviderUnavailable as e:
            report.embedding_error = e.message

        if report.halted:
            report.embedding_error = self.embeddings.halted.message
        elif (
            report.probe_dimension is not None
            and report.embedding_dimension is not None
            and report.probe_dimension != report.embedding_dimension
        ):
            report.embedding_error = (
                f"Provider returns {report.probe_dimension}-dimensional vectors, "
                f"expected {report.embedding_dimension}"
            )

        if not report.store_reachable:
            report.status = "unhealthy"
        elif report.embedding_error is not None:
            report.status = "degraded"

        logger.info(
            f"Health check: {report.status}",
            extra={"store": report.store_reachable, "embedding": report.embedding_available},
        )
        return report

    async def reconcile_embeddings(self, dimension: int | None = None) -> int:
        """
        Clear a dimension halt after the embedder configuration was fixed.

        Stored node embeddings of another dimension are dropped; a
        following `resweep_auto_links()` re-embeds and re-links them.

        Returns:
            Number of node embeddings dropped
        """
        self.embeddings.reconcile(dimension)
        dropped = 0
        async with self.store.transaction() as session:
            for node in await session.list_nodes(status=None):
                if node.has_embedding and (dimension is None or len(node.embedding) != dimension):
                    await session.set_node_embedding(node.id, None, node.content_hash)
                    dropped += 1
            if dimension is None:
                # the next stored vector records its size
                await session.delete_metadata(DIMENSION_KEY)
                await session.delete_metadata(MODEL_KEY)
            else:
                await session.set_metadata(DIMENSION_KEY, str(dimension))
                await session.set_metadata(MODEL_KEY, self.embeddings.model_id)

        logger.warning(
            "Embeddings reconciled",
            extra={"dimension": dimension, "dropped": dropped},
        )
        return dropped

    # ═══════════════════════════════════════════════════════════
    # HELPER METHODS
    # ═══════════════════════════════════════════════════════════

    async def _embed_text(self, text: str) -> tuple[list[float] | None, str | None]:
        """
        Embed outside any transaction.

        Returns:
            (vector, None) on success, (None, reason) when the provider is down
        """
        try:
            return await self.embeddings.embed(text), None
        except ProviderUnavailable as e:
            logger.warning(
                "Embedding unavailable, falling back to tag-only scoring",
                extra={"operation": "embed", "error": e.message},
            )
            return None, e.message

    async def _record_dimension(self, session, dimension: int) -> None:
        if await session.get_metadata(DIMENSION_KEY) is None:
            await session.set_metadata(DIMENSION_KEY, str(dimension))
            await session.set_metadata(MODEL_KEY, self.embeddings.model_id)

    async def _link(self, node_id: str, force_reevaluate: bool = False) -> LinkResult:
        async with self.concurrency.node_lock(node_id):
            return await self.linker.link_node(node_id, force_reevaluate)

    async def _sweep_node(self, node: Node, force_reevaluate: bool, result: ResweepResult) -> None:
        if not node.has_embedding:
            embedding, _ = await self._embed_text(node.embedding_text)
            if embedding is not None:
                async with self.store.transaction() as session:
                    # compare-and-set on content: a concurrent edit wins
                    if await session.set_node_embedding(node.id, embedding, node.content_hash):
                        await self._record_dimension(session, len(embedding))
                        result.nodes_embedded += 1

        link = await self._link(node.id, force_reevaluate)
        result.nodes_processed += 1
        result.edges_created += link.created + link.reopened
        result.edges_updated += link.updated
