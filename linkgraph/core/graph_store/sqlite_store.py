"""
SQLite graph store implementation using aiosqlite.

Layout:
- one writer connection, serialized by an asyncio lock, every write inside
  `BEGIN IMMEDIATE ... COMMIT` so read-then-write sequences are atomic
  against other processes as well
- one reader connection for committed reads (WAL lets it run alongside
  the writer)

Driver errors are translated to StoreUnavailable at this boundary.
"""

import asyncio
import json
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from linkgraph.core.graph_store.base import GraphSession, GraphStore
from linkgraph.models.document import Chunk, ChunkType, Document
from linkgraph.models.edge import Edge, EdgeEvent, EdgeFilter, EdgeState, ScoreBreakdown
from linkgraph.models.node import LayoutPosition, Node, NodeStatus
from linkgraph.utils.datetime_utils import from_iso, to_iso, utc_now
from linkgraph.utils.exceptions import StoreError, StoreUnavailable
from linkgraph.utils.id_generator import canonical_pair
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS nodes (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    body TEXT NOT NULL,
    tags TEXT NOT NULL DEFAULT '[]',
    content_hash TEXT NOT NULL,
    embedding TEXT,
    version INTEGER NOT NULL DEFAULT 1,
    status TEXT NOT NULL DEFAULT 'active',
    author_id TEXT,
    layout_x REAL,
    layout_y REAL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    deleted_at TEXT
);

CREATE TABLE IF NOT EXISTS node_tags (
    node_id TEXT NOT NULL,
    tag TEXT NOT NULL,
    PRIMARY KEY (node_id, tag),
    FOREIGN KEY (node_id) REFERENCES nodes(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS edges (
    id TEXT PRIMARY KEY,
    source_id TEXT NOT NULL,
    target_id TEXT NOT NULL,
    state TEXT NOT NULL CHECK (state IN ('suggested', 'accepted', 'rejected')),
    score REAL NOT NULL,
    breakdown TEXT NOT NULL DEFAULT '{}',
    content_signature TEXT NOT NULL DEFAULT '',
    decision_reason TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    decided_at TEXT,
    decided_by TEXT,
    UNIQUE (source_id, target_id),
    CHECK (source_id < target_id),
    FOREIGN KEY (source_id) REFERENCES nodes(id) ON DELETE CASCADE,
    FOREIGN KEY (target_id) REFERENCES nodes(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS edge_events (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    edge_id TEXT NOT NULL,
    source_id TEXT NOT NULL,
    target_id TEXT NOT NULL,
    from_state TEXT,
    to_state TEXT NOT NULL,
    actor TEXT NOT NULL,
    reason TEXT,
    reverts_seq INTEGER,
    payload TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
);

CREATE TRIGGER IF NOT EXISTS edge_events_no_update
BEFORE UPDATE ON edge_events
BEGIN
    SELECT RAISE(ABORT, 'edge_events is append-only');
END;

CREATE TRIGGER IF NOT EXISTS edge_events_no_delete
BEFORE DELETE ON edge_events
BEGIN
    SELECT RAISE(ABORT, 'edge_events is append-only');
END;

CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    body TEXT NOT NULL,
    tags TEXT NOT NULL DEFAULT '[]',
    content_hash TEXT NOT NULL,
    version INTEGER NOT NULL DEFAULT 1,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS document_chunks (
    id TEXT PRIMARY KEY,
    document_id TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    chunk_type TEXT NOT NULL,
    heading TEXT NOT NULL DEFAULT '',
    content TEXT NOT NULL,
    content_hash TEXT NOT NULL,
    char_offset INTEGER NOT NULL DEFAULT 0,
    embedding TEXT,
    created_at TEXT NOT NULL,
    UNIQUE (document_id, chunk_index),
    FOREIGN KEY (document_id) REFERENCES documents(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS sweep_cursors (
    name TEXT PRIMARY KEY,
    cursor TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS store_metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_nodes_status ON nodes(status);
CREATE INDEX IF NOT EXISTS idx_nodes_updated ON nodes(updated_at);
CREATE INDEX IF NOT EXISTS idx_node_tags_tag ON node_tags(tag);
CREATE INDEX IF NOT EXISTS idx_edges_source ON edges(source_id);
CREATE INDEX IF NOT EXISTS idx_edges_target ON edges(target_id);
CREATE INDEX IF NOT EXISTS idx_edges_state ON edges(state);
CREATE INDEX IF NOT EXISTS idx_edge_events_edge ON edge_events(edge_id, seq);
CREATE INDEX IF NOT EXISTS idx_chunks_document ON document_chunks(document_id, chunk_index);
"""


def _translate(error: sqlite3.Error, operation: str) -> StoreError:
    if isinstance(error, sqlite3.IntegrityError):
        return StoreError(f"Integrity violation during {operation}: {error}", {"operation": operation})
    return StoreUnavailable(f"Store unavailable during {operation}: {error}", {"operation": operation})


class SQLiteGraphSession(GraphSession):
    """GraphSession over a single aiosqlite connection."""

    def __init__(self, connection: aiosqlite.Connection):
        self.connection = connection

    # ═══════════════════════════════════════════════════════════
    # LOW-LEVEL HELPERS
    # ═══════════════════════════════════════════════════════════

    async def _execute(self, sql: str, params: tuple | list = ()) -> int:
        try:
            async with self.connection.execute(sql, params) as cursor:
                return cursor.rowcount
        except sqlite3.Error as e:
            raise _translate(e, sql.split()[0].lower()) from e

    async def _insert(self, sql: str, params: tuple | list = ()) -> int:
        try:
            async with self.connection.execute(sql, params) as cursor:
                return cursor.lastrowid
        except sqlite3.Error as e:
            raise _translate(e, "insert") from e

    async def _fetchone(self, sql: str, params: tuple | list = ()) -> aiosqlite.Row | None:
        try:
            async with self.connection.execute(sql, params) as cursor:
                return await cursor.fetchone()
        except sqlite3.Error as e:
            raise _translate(e, "select") from e

    async def _fetchall(self, sql: str, params: tuple | list = ()) -> list[aiosqlite.Row]:
        try:
            async with self.connection.execute(sql, params) as cursor:
                return list(await cursor.fetchall())
        except sqlite3.Error as e:
            raise _translate(e, "select") from e

    # ═══════════════════════════════════════════════════════════
    # NODE OPERATIONS
    # ═══════════════════════════════════════════════════════════

    async def get_node(self, node_id: str) -> Node | None:
        row = await self._fetchone("SELECT * FROM nodes WHERE id = ?", (node_id,))
        return self._row_to_node(row) if row else None

    async def insert_node(self, node: Node) -> None:
        await self._insert(
            """
            INSERT INTO nodes (
                id, title, body, tags, content_hash, embedding, version, status,
                author_id, layout_x, layout_y, created_at, updated_at, deleted_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            self._node_params(node),
        )
        await self._write_tags(node.id, node.tags)

    async def update_node_versioned(self, node: Node, expected_version: int) -> bool:
        changed = await self._execute(
            """
            UPDATE nodes
            SET title = ?, body = ?, tags = ?, content_hash = ?, embedding = ?,
                version = ?, updated_at = ?
            WHERE id = ? AND version = ? AND status = 'active'
            """,
            (
                node.title,
                node.body,
                json.dumps(node.tags),
                node.content_hash,
                json.dumps(node.embedding) if node.embedding else None,
                node.version,
                to_iso(node.updated_at),
                node.id,
                expected_version,
            ),
        )
        if changed:
            await self._write_tags(node.id, node.tags)
        return changed > 0

    async def set_node_embedding(
        self, node_id: str, embedding: list[float] | None, content_hash: str
    ) -> bool:
        changed = await self._execute(
            "UPDATE nodes SET embedding = ? WHERE id = ? AND content_hash = ?",
            (json.dumps(embedding) if embedding else None, node_id, content_hash),
        )
        return changed > 0

    async def set_node_status(
        self, node_id: str, status: NodeStatus, deleted_at: datetime | None
    ) -> bool:
        changed = await self._execute(
            "UPDATE nodes SET status = ?, deleted_at = ?, updated_at = ? WHERE id = ?",
            (status.value, to_iso(deleted_at), to_iso(utc_now()), node_id),
        )
        return changed > 0

    async def set_layout_position(self, node_id: str, position: LayoutPosition | None) -> bool:
        changed = await self._execute(
            "UPDATE nodes SET layout_x = ?, layout_y = ? WHERE id = ?",
            (
                position.x if position else None,
                position.y if position else None,
                node_id,
            ),
        )
        return changed > 0

    async def purge_node(self, node_id: str) -> bool:
        changed = await self._execute("DELETE FROM nodes WHERE id = ?", (node_id,))
        return changed > 0

    async def list_nodes(
        self,
        status: NodeStatus | None = NodeStatus.ACTIVE,
        after_id: str | None = None,
        limit: int | None = None,
    ) -> list[Node]:
        query = "SELECT * FROM nodes WHERE 1=1"
        params: list[Any] = []

        if status is not None:
            query += " AND status = ?"
            params.append(status.value)

        if after_id is not None:
            query += " AND id > ?"
            params.append(after_id)

        query += " ORDER BY id ASC"

        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        rows = await self._fetchall(query, params)
        return [self._row_to_node(row) for row in rows]

    async def nodes_with_any_tag(
        self, tags: list[str], exclude_id: str | None = None, limit: int | None = None
    ) -> list[Node]:
        if not tags:
            return []

        placeholders = ",".join("?" * len(tags))
        query = f"""
            SELECT n.* FROM nodes n
            WHERE n.status = 'active'
              AND n.id IN (SELECT node_id FROM node_tags WHERE tag IN ({placeholders}))
        """
        params: list[Any] = list(tags)

        if exclude_id is not None:
            query += " AND n.id != ?"
            params.append(exclude_id)

        query += " ORDER BY n.updated_at DESC, n.id ASC"

        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        rows = await self._fetchall(query, params)
        return [self._row_to_node(row) for row in rows]

    async def count_nodes(self, status: NodeStatus | None = NodeStatus.ACTIVE) -> int:
        if status is None:
            row = await self._fetchone("SELECT COUNT(*) FROM nodes")
        else:
            row = await self._fetchone("SELECT COUNT(*) FROM nodes WHERE status = ?", (status.value,))
        return row[0] if row else 0

    async def _write_tags(self, node_id: str, tags: list[str]) -> None:
        await self._execute("DELETE FROM node_tags WHERE node_id = ?", (node_id,))
        for tag in tags:
            await self._execute(
                "INSERT OR IGNORE INTO node_tags (node_id, tag) VALUES (?, ?)", (node_id, tag)
            )

    # ═══════════════════════════════════════════════════════════
    # EDGE OPERATIONS
    # ═══════════════════════════════════════════════════════════

    async def get_edge(self, edge_id: str) -> Edge | None:
        row = await self._fetchone("SELECT * FROM edges WHERE id = ?", (edge_id,))
        return self._row_to_edge(row) if row else None

    async def get_edge_for_pair(self, a: str, b: str) -> Edge | None:
        source_id, target_id = canonical_pair(a, b)
        row = await self._fetchone(
            "SELECT * FROM edges WHERE source_id = ? AND target_id = ?", (source_id, target_id)
        )
        return self._row_to_edge(row) if row else None

    async def insert_edge(self, edge: Edge) -> None:
        await self._insert(
            """
            INSERT INTO edges (
                id, source_id, target_id, state, score, breakdown, content_signature,
                decision_reason, created_at, updated_at, decided_at, decided_by
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                edge.id,
                edge.source_id,
                edge.target_id,
                edge.state.value,
                edge.score,
                edge.breakdown.model_dump_json(),
                edge.content_signature,
                edge.decision_reason,
                to_iso(edge.created_at),
                to_iso(edge.updated_at),
                to_iso(edge.decided_at),
                edge.decided_by,
            ),
        )

    async def update_edge(self, edge: Edge) -> None:
        changed = await self._execute(
            """
            UPDATE edges
            SET state = ?, score = ?, breakdown = ?, content_signature = ?,
                decision_reason = ?, updated_at = ?, decided_at = ?, decided_by = ?
            WHERE id = ?
            """,
            (
                edge.state.value,
                edge.score,
                edge.breakdown.model_dump_json(),
                edge.content_signature,
                edge.decision_reason,
                to_iso(edge.updated_at),
                to_iso(edge.decided_at),
                edge.decided_by,
                edge.id,
            ),
        )
        if not changed:
            raise StoreError(f"Edge {edge.id} does not exist", {"edge_id": edge.id})

    async def list_edges(self, edge_filter: EdgeFilter) -> list[Edge]:
        query = "SELECT * FROM edges WHERE 1=1"
        params: list[Any] = []

        if edge_filter.states:
            placeholders = ",".join("?" * len(edge_filter.states))
            query += f" AND state IN ({placeholders})"
            params.extend(state.value for state in edge_filter.states)

        if edge_filter.node_id:
            query += " AND (source_id = ? OR target_id = ?)"
            params.extend([edge_filter.node_id, edge_filter.node_id])

        if edge_filter.min_score is not None:
            query += " AND score >= ?"
            params.append(edge_filter.min_score)

        if edge_filter.max_score is not None:
            query += " AND score <= ?"
            params.append(edge_filter.max_score)

        query += " ORDER BY score DESC, id ASC"

        if edge_filter.limit is not None or edge_filter.offset:
            query += " LIMIT ? OFFSET ?"
            params.extend([edge_filter.limit if edge_filter.limit is not None else -1, edge_filter.offset])

        rows = await self._fetchall(query, params)
        return [self._row_to_edge(row) for row in rows]

    async def edges_for_node(
        self, node_id: str, states: list[EdgeState] | None = None
    ) -> list[Edge]:
        return await self.list_edges(EdgeFilter(node_id=node_id, states=states or []))

    async def delete_edges_for_node(self, node_id: str) -> int:
        return await self._execute(
            "DELETE FROM edges WHERE source_id = ? OR target_id = ?", (node_id, node_id)
        )

    async def count_edges_by_state(self) -> dict[str, int]:
        rows = await self._fetchall("SELECT state, COUNT(*) AS n FROM edges GROUP BY state")
        counts = {state.value: 0 for state in EdgeState}
        counts.update({row["state"]: row["n"] for row in rows})
        return counts

    # ═══════════════════════════════════════════════════════════
    # EDGE EVENTS
    # ═══════════════════════════════════════════════════════════

    async def append_edge_event(self, event: EdgeEvent) -> EdgeEvent:
        seq = await self._insert(
            """
            INSERT INTO edge_events (
                edge_id, source_id, target_id, from_state, to_state, actor,
                reason, reverts_seq, payload, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.edge_id,
                event.source_id,
                event.target_id,
                event.from_state.value if event.from_state else None,
                event.to_state.value,
                event.actor,
                event.reason,
                event.reverts_seq,
                json.dumps(event.payload),
                to_iso(event.timestamp),
            ),
        )
        return event.model_copy(update={"seq": seq})

    async def list_edge_events(
        self, edge_id: str | None = None, limit: int | None = None
    ) -> list[EdgeEvent]:
        query = "SELECT * FROM edge_events"
        params: list[Any] = []

        if edge_id is not None:
            query += " WHERE edge_id = ?"
            params.append(edge_id)

        query += " ORDER BY seq DESC"

        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        rows = await self._fetchall(query, params)
        return [self._row_to_event(row) for row in reversed(rows)]

    async def count_edge_events(self) -> int:
        row = await self._fetchone("SELECT COUNT(*) FROM edge_events")
        return row[0] if row else 0

    # ═══════════════════════════════════════════════════════════
    # DOCUMENTS
    # ═══════════════════════════════════════════════════════════

    async def upsert_document(self, document: Document) -> None:
        await self._execute(
            """
            INSERT INTO documents (
                id, title, body, tags, content_hash, version, metadata, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                body = excluded.body,
                tags = excluded.tags,
                content_hash = excluded.content_hash,
                version = excluded.version,
                metadata = excluded.metadata,
                updated_at = excluded.updated_at
            """,
            (
                document.id,
                document.title,
                document.body,
                json.dumps(document.tags),
                document.content_hash,
                document.version,
                json.dumps(document.metadata),
                to_iso(document.created_at),
                to_iso(document.updated_at),
            ),
        )

    async def replace_chunks(self, document_id: str, chunks: list[Chunk]) -> None:
        await self._execute("DELETE FROM document_chunks WHERE document_id = ?", (document_id,))
        for chunk in chunks:
            await self._insert(
                """
                INSERT INTO document_chunks (
                    id, document_id, chunk_index, chunk_type, heading, content,
                    content_hash, char_offset, embedding, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    chunk.id,
                    document_id,
                    chunk.chunk_index,
                    chunk.chunk_type.value,
                    chunk.heading,
                    chunk.content,
                    chunk.content_hash,
                    chunk.offset,
                    json.dumps(chunk.embedding) if chunk.embedding else None,
                    to_iso(chunk.created_at),
                ),
            )

    async def set_chunk_embedding(
        self, chunk_id: str, embedding: list[float], content_hash: str
    ) -> bool:
        changed = await self._execute(
            "UPDATE document_chunks SET embedding = ? WHERE id = ? AND content_hash = ?",
            (json.dumps(embedding), chunk_id, content_hash),
        )
        return changed > 0

    async def get_document(self, document_id: str) -> Document | None:
        row = await self._fetchone("SELECT * FROM documents WHERE id = ?", (document_id,))
        if not row:
            return None
        chunks = await self.list_chunks(document_id)
        return Document(
            id=row["id"],
            title=row["title"],
            body=row["body"],
            tags=json.loads(row["tags"]),
            content_hash=row["content_hash"],
            version=row["version"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            chunks=chunks,
            created_at=from_iso(row["created_at"]),
            updated_at=from_iso(row["updated_at"]),
        )

    async def list_chunks(self, document_id: str | None = None) -> list[Chunk]:
        if document_id is None:
            rows = await self._fetchall(
                "SELECT * FROM document_chunks ORDER BY document_id, chunk_index"
            )
        else:
            rows = await self._fetchall(
                "SELECT * FROM document_chunks WHERE document_id = ? ORDER BY chunk_index",
                (document_id,),
            )
        return [self._row_to_chunk(row) for row in rows]

    async def count_documents(self) -> int:
        row = await self._fetchone("SELECT COUNT(*) FROM documents")
        return row[0] if row else 0

    # ═══════════════════════════════════════════════════════════
    # METADATA AND CURSORS
    # ═══════════════════════════════════════════════════════════

    async def get_metadata(self, key: str) -> str | None:
        row = await self._fetchone("SELECT value FROM store_metadata WHERE key = ?", (key,))
        return row["value"] if row else None

    async def set_metadata(self, key: str, value: str) -> None:
        await self._execute(
            "INSERT INTO store_metadata (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )

    async def delete_metadata(self, key: str) -> None:
        await self._execute("DELETE FROM store_metadata WHERE key = ?", (key,))

    async def get_cursor(self, name: str) -> str | None:
        row = await self._fetchone("SELECT cursor FROM sweep_cursors WHERE name = ?", (name,))
        return row["cursor"] if row else None

    async def set_cursor(self, name: str, value: str) -> None:
        await self._execute(
            "INSERT INTO sweep_cursors (name, cursor, updated_at) VALUES (?, ?, ?) "
            "ON CONFLICT(name) DO UPDATE SET cursor = excluded.cursor, updated_at = excluded.updated_at",
            (name, value, to_iso(utc_now())),
        )

    async def clear_cursor(self, name: str) -> None:
        await self._execute("DELETE FROM sweep_cursors WHERE name = ?", (name,))

    # ═══════════════════════════════════════════════════════════
    # HELPER METHODS
    # ═══════════════════════════════════════════════════════════

    @staticmethod
    def _node_params(node: Node) -> tuple:
        return (
            node.id,
            node.title,
            node.body,
            json.dumps(node.tags),
            node.content_hash,
            json.dumps(node.embedding) if node.embedding else None,
            node.version,
            node.status.value,
            node.author_id,
            node.layout_position.x if node.layout_position else None,
            node.layout_position.y if node.layout_position else None,
            to_iso(node.created_at),
            to_iso(node.updated_at),
            to_iso(node.deleted_at),
        )

    @staticmethod
    def _row_to_node(row: aiosqlite.Row) -> Node:
        """Convert database row to Node object."""
        layout = None
        if row["layout_x"] is not None and row["layout_y"] is not None:
            layout = LayoutPosition(x=row["layout_x"], y=row["layout_y"])

        return Node(
            id=row["id"],
            title=row["title"],
            body=row["body"],
            tags=json.loads(row["tags"]) if row["tags"] else [],
            content_hash=row["content_hash"],
            embedding=json.loads(row["embedding"]) if row["embedding"] else None,
            version=row["version"],
            status=NodeStatus(row["status"]),
            author_id=row["author_id"],
            layout_position=layout,
            created_at=from_iso(row["created_at"]),
            updated_at=from_iso(row["updated_at"]),
            deleted_at=from_iso(row["deleted_at"]),
        )

    @staticmethod
    def _row_to_edge(row: aiosqlite.Row) -> Edge:
        """Convert database row to Edge object."""
        return Edge(
            id=row["id"],
            source_id=row["source_id"],
            target_id=row["target_id"],
            state=EdgeState(row["state"]),
            score=row["score"],
            breakdown=ScoreBreakdown.model_validate_json(row["breakdown"] or "{}"),
            content_signature=row["content_signature"] or "",
            decision_reason=row["decision_reason"],
            created_at=from_iso(row["created_at"]),
            updated_at=from_iso(row["updated_at"]),
            decided_at=from_iso(row["decided_at"]),
            decided_by=row["decided_by"],
        )

    @staticmethod
    def _row_to_event(row: aiosqlite.Row) -> EdgeEvent:
        return EdgeEvent(
            seq=row["seq"],
            edge_id=row["edge_id"],
            source_id=row["source_id"],
            target_id=row["target_id"],
            from_state=EdgeState(row["from_state"]) if row["from_state"] else None,
            to_state=EdgeState(row["to_state"]),
            actor=row["actor"],
            reason=row["reason"],
            reverts_seq=row["reverts_seq"],
            payload=json.loads(row["payload"]) if row["payload"] else {},
            timestamp=from_iso(row["created_at"]),
        )

    @staticmethod
    def _row_to_chunk(row: aiosqlite.Row) -> Chunk:
        return Chunk(
            id=row["id"],
            document_id=row["document_id"],
            chunk_index=row["chunk_index"],
            chunk_type=ChunkType(row["chunk_type"]),
            heading=row["heading"],
            content=row["content"],
            content_hash=row["content_hash"],
            offset=row["char_offset"],
            embedding=json.loads(row["embedding"]) if row["embedding"] else None,
            created_at=from_iso(row["created_at"]),
        )


class SQLiteGraphStore(GraphStore):
    """
    SQLite-based graph store for nodes, edges, edge events and documents.

    Features:
    - Fast local storage, WAL journaling
    - JSON columns for tags, embeddings and score breakdowns
    - Append-only edge_events enforced by triggers
    - Serialized IMMEDIATE write transactions
    """

    def __init__(self, db_path: str = "data/linkgraph.db", busy_timeout_ms: int = 5000):
        """
        Initialize SQLite graph store.

        Args:
            db_path: Path to SQLite database file (":memory:" shares one connection)
            busy_timeout_ms: How long a writer waits on another process's lock
        """
        self.db_path = db_path
        self.busy_timeout_ms = busy_timeout_ms
        self.connection: aiosqlite.Connection | None = None
        self.read_connection: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()
        self._reader: SQLiteGraphSession | None = None

        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async def _open(self) -> aiosqlite.Connection:
        connection = await aiosqlite.connect(self.db_path, isolation_level=None)
        connection.row_factory = aiosqlite.Row
        await connection.execute("PRAGMA foreign_keys = ON")
        await connection.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
        return connection

    async def connect(self) -> None:
        """Establish connections to SQLite."""
        if self.connection is not None:
            return
        try:
            self.connection = await self._open()
            if self.db_path != ":memory:":
                await self.connection.execute("PRAGMA journal_mode = WAL")
                self.read_connection = await self._open()
            else:
                self.read_connection = self.connection
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Cannot open store at {self.db_path}: {e}") from e
        self._reader = SQLiteGraphSession(self.read_connection)

    async def initialize(self) -> None:
        """Initialize database schema."""
        await self.connect()
        async with self._write_lock:
            try:
                await self.connection.executescript(SCHEMA)
            except sqlite3.Error as e:
                raise StoreUnavailable(f"Cannot initialize schema: {e}") from e
        logger.info("SQLite graph store initialized", extra={"db_path": self.db_path})

    @property
    def reader(self) -> SQLiteGraphSession:
        if self._reader is None:
            raise StoreUnavailable("Store is not connected; call initialize() first")
        return self._reader

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLiteGraphSession]:
        if self.connection is None:
            raise StoreUnavailable("Store is not connected; call initialize() first")

        async with self._write_lock:
            try:
                await self.connection.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StoreUnavailable(f"Cannot begin transaction: {e}") from e

            try:
                yield SQLiteGraphSession(self.connection)
            except BaseException:
                await self._rollback()
                raise

            try:
                await self.connection.execute("COMMIT")
            except sqlite3.Error as e:
                await self._rollback()
                raise StoreUnavailable(f"Commit failed: {e}") from e

    async def _rollback(self) -> None:
        try:
            await self.connection.execute("ROLLBACK")
        except sqlite3.Error as e:
            # the original error is re-raised by the caller
            logger.error("Rollback failed", extra={"db_path": self.db_path, "error": str(e)})

    async def close(self) -> None:
        """Close the connections."""
        if self.read_connection is not None and self.read_connection is not self.connection:
            await self.read_connection.close()
        if self.connection is not None:
            await self.connection.close()
        self.connection = None
        self.read_connection = None
        self._reader = None
