"""
Tests for the SQLite graph store.
"""

from datetime import timedelta

import pytest

from helpers import BASE_TIME, make_node
from linkgraph.core.graph_store.sqlite_store import SQLiteGraphStore
from linkgraph.models.document import Chunk, Document
from linkgraph.models.edge import Edge, EdgeEvent, EdgeFilter, EdgeState
from linkgraph.models.node import LayoutPosition, NodeStatus
from linkgraph.utils.exceptions import StoreError, StoreUnavailable


async def insert_nodes(store, *nodes):
    async with store.transaction() as session:
        for node in nodes:
            await session.insert_node(node)


@pytest.mark.integration
@pytest.mark.asyncio
class TestNodeOperations:
    async def test_insert_and_get_node(self, store):
        node = make_node("Use PostgreSQL", ["db", "sql"], [0.1, 0.2, 0.3])
        await insert_nodes(store, node)

        stored = await store.reader.get_node(node.id)

        assert stored is not None
        assert stored.title == "Use PostgreSQL"
        assert stored.tags == ["db", "sql"]
        assert stored.embedding == [0.1, 0.2, 0.3]
        assert stored.version == 1
        assert stored.created_at == node.created_at

    async def test_get_missing_node(self, store):
        assert await store.reader.get_node("node_missing") is None

    async def test_versioned_update(self, store):
        node = make_node("Draft", ["a"])
        await insert_nodes(store, node)

        async with store.transaction() as session:
            written = await session.update_node_versioned(
                node.model_copy(update={"title": "Final", "tags": ["b"], "version": 2}), 1
            )
            stale = await session.update_node_versioned(
                node.model_copy(update={"title": "Lost", "version": 2}), 1
            )

        stored = await store.reader.get_node(node.id)
        assert written is True
        assert stale is False
        assert stored.title == "Final"
        assert stored.version == 2
        assert await store.reader.nodes_with_any_tag(["a"]) == []
        assert [n.id for n in await store.reader.nodes_with_any_tag(["b"])] == [node.id]

    async def test_set_embedding_requires_matching_content(self, store):
        node = make_node("Text")
        await insert_nodes(store, node)

        async with store.transaction() as session:
            assert await session.set_node_embedding(node.id, [1.0, 0.0], node.content_hash)
            assert not await session.set_node_embedding(node.id, [0.0, 1.0], "sha256:other")

        assert (await store.reader.get_node(node.id)).embedding == [1.0, 0.0]

    async def test_tombstone_and_restore(self, store):
        node = make_node("Temp", ["x"])
        await insert_nodes(store, node)

        async with store.transaction() as session:
            await session.set_node_status(node.id, NodeStatus.DELETED, BASE_TIME)

        stored = await store.reader.get_node(node.id)
        assert stored.status == NodeStatus.DELETED
        assert stored.deleted_at == BASE_TIME
        assert await store.reader.list_nodes() == []
        assert await store.reader.nodes_with_any_tag(["x"]) == []
        assert await store.reader.count_nodes(NodeStatus.DELETED) == 1

        async with store.transaction() as session:
            await session.set_node_status(node.id, NodeStatus.ACTIVE, None)

        assert (await store.reader.get_node(node.id)).is_active

    async def test_layout_position(self, store):
        node = make_node("Placed")
        await insert_nodes(store, node)

        async with store.transaction() as session:
            assert await session.set_layout_position(node.id, LayoutPosition(x=1.5, y=-2.0))
            assert not await session.set_layout_position("node_missing", LayoutPosition(x=0, y=0))

        assert (await store.reader.get_node(node.id)).layout_position == LayoutPosition(x=1.5, y=-2.0)

    async def test_list_nodes_keyset_pagination(self, store):
        nodes = [make_node(f"Node {i}", node_id=f"node_{i:03d}") for i in range(5)]
        await insert_nodes(store, *nodes)

        first = await store.reader.list_nodes(limit=2)
        rest = await store.reader.list_nodes(after_id=first[-1].id)

        assert [n.id for n in first] == ["node_000", "node_001"]
        assert [n.id for n in rest] == ["node_002", "node_003", "node_004"]

    async def test_nodes_with_any_tag_most_recent_first(self, store):
        older = make_node("Older", ["db"], updated_at=BASE_TIME - timedelta(days=3))
        newer = make_node("Newer", ["db", "ml"], updated_at=BASE_TIME)
        other = make_node("Other", ["cooking"])
        await insert_nodes(store, older, newer, other)

        found = await store.reader.nodes_with_any_tag(["db", "ml"], exclude_id=None)

        assert [n.id for n in found] == [newer.id, older.id]
        assert await store.reader.nodes_with_any_tag([]) == []


@pytest.mark.integration
@pytest.mark.asyncio
class TestEdgeOperations:
    async def test_edge_is_canonical(self, store):
        a = make_node("A", node_id="node_a")
        b = make_node("B", node_id="node_b")
        await insert_nodes(store, a, b)

        async with store.transaction() as session:
            await session.insert_edge(Edge(source_id="node_b", target_id="node_a", score=0.8))

        edge = await store.reader.get_edge_for_pair("node_b", "node_a")
        assert edge.id == "node_a::node_b"
        assert edge.source_id == "node_a"
        assert edge.target_id == "node_b"

    async def test_duplicate_pair_rejected(self, store):
        a = make_node("A", node_id="node_a")
        b = make_node("B", node_id="node_b")
        await insert_nodes(store, a, b)
        async with store.transaction() as session:
            await session.insert_edge(Edge(source_id="node_a", target_id="node_b", score=0.8))

        with pytest.raises(StoreError):
            async with store.transaction() as session:
                await session.insert_edge(Edge(source_id="node_b", target_id="node_a", score=0.9))

        assert len(await store.reader.list_edges(EdgeFilter(states=[]))) == 1

    async def test_self_loop_rejected(self):
        with pytest.raises(ValueError):
            Edge(source_id="node_a", target_id="node_a")

    async def test_list_edges_filter_and_order(self, store):
        nodes = [make_node(n, node_id=f"node_{n}") for n in "abcd"]
        await insert_nodes(store, *nodes)
        async with store.transaction() as session:
            await session.insert_edge(Edge(source_id="node_a", target_id="node_b", score=0.6))
            await session.insert_edge(Edge(source_id="node_a", target_id="node_c", score=0.9))
            await session.insert_edge(
                Edge(source_id="node_c", target_id="node_d", score=0.7, state=EdgeState.ACCEPTED)
            )

        suggested = await store.reader.list_edges(EdgeFilter())
        assert [e.id for e in suggested] == ["node_a::node_c", "node_a::node_b"]

        around_c = await store.reader.edges_for_node("node_c")
        assert {e.id for e in around_c} == {"node_a::node_c", "node_c::node_d"}

        above = await store.reader.list_edges(EdgeFilter(states=[], min_score=0.65))
        assert [e.id for e in above] == ["node_a::node_c", "node_c::node_d"]

        paged = await store.reader.list_edges(EdgeFilter(states=[], limit=1, offset=1))
        assert [e.id for e in paged] == ["node_c::node_d"]

        assert await store.reader.count_edges_by_state() == {
            "suggested": 2,
            "accepted": 1,
            "rejected": 0,
        }

    async def test_delete_edges_for_node(self, store):
        nodes = [make_node(n, node_id=f"node_{n}") for n in "abc"]
        await insert_nodes(store, *nodes)
        async with store.transaction() as session:
            await session.insert_edge(Edge(source_id="node_a", target_id="node_b", score=0.6))
            await session.insert_edge(Edge(source_id="node_b", target_id="node_c", score=0.6))
            removed = await session.delete_edges_for_node("node_b")
            await session.purge_node("node_b")

        assert removed == 2
        assert await store.reader.get_node("node_b") is None


@pytest.mark.integration
@pytest.mark.asyncio
class TestEdgeEvents:
    async def _seed(self, store):
        await insert_nodes(store, make_node("A", node_id="node_a"), make_node("B", node_id="node_b"))
        events = []
        async with store.transaction() as session:
            for from_state, to_state in [
                (None, EdgeState.SUGGESTED),
                (EdgeState.SUGGESTED, EdgeState.ACCEPTED),
                (EdgeState.ACCEPTED, EdgeState.SUGGESTED),
            ]:
                events.append(
                    await session.append_edge_event(
                        EdgeEvent(
                            edge_id="node_a::node_b",
                            source_id="node_a",
                            target_id="node_b",
                            from_state=from_state,
                            to_state=to_state,
                            actor="tester",
                        )
                    )
                )
        return events

    async def test_seq_strictly_increasing(self, store):
        events = await self._seed(store)

        seqs = [event.seq for event in events]
        assert seqs == sorted(seqs)
        assert len(set(seqs)) == 3

    async def test_list_events_ascending_and_limited(self, store):
        await self._seed(store)

        everything = await store.reader.list_edge_events("node_a::node_b")
        latest = await store.reader.list_edge_events("node_a::node_b", limit=2)

        assert [e.to_state for e in everything] == [
            EdgeState.SUGGESTED,
            EdgeState.ACCEPTED,
            EdgeState.SUGGESTED,
        ]
        assert [e.seq for e in latest] == [everything[1].seq, everything[2].seq]
        assert await store.reader.count_edge_events() == 3

    async def test_events_are_append_only(self, store):
        await self._seed(store)

        with pytest.raises(StoreError):
            async with store.transaction() as session:
                await session._execute("UPDATE edge_events SET actor = 'mallory'")

        with pytest.raises(StoreError):
            async with store.transaction() as session:
                await session._execute("DELETE FROM edge_events")

        assert await store.reader.count_edge_events() == 3


@pytest.mark.integration
@pytest.mark.asyncio
class TestTransactions:
    async def test_rollback_on_error(self, store):
        node = make_node("Never committed")

        with pytest.raises(RuntimeError):
            async with store.transaction() as session:
                await session.insert_node(node)
                raise RuntimeError("boom")

        assert await store.reader.get_node(node.id) is None

    async def test_reader_before_initialize(self, tmp_path):
        unopened = SQLiteGraphStore(str(tmp_path / "x.db"))

        with pytest.raises(StoreUnavailable):
            unopened.reader

    async def test_data_survives_reopen(self, tmp_path):
        path = str(tmp_path / "persist.db")
        node = make_node("Persistent", ["keep"])

        first = SQLiteGraphStore(path)
        await first.initialize()
        await insert_nodes(first, node)
        await first.close()

        second = SQLiteGraphStore(path)
        await second.initialize()
        try:
            assert (await second.reader.get_node(node.id)).tags == ["keep"]
        finally:
            await second.close()

    async def test_in_memory_store(self):
        memory_store = SQLiteGraphStore(":memory:")
        await memory_store.initialize()
        try:
            node = make_node("Ephemeral")
            await insert_nodes(memory_store, node)
            assert await memory_store.reader.get_node(node.id) is not None
        finally:
            await memory_store.close()


@pytest.mark.integration
@pytest.mark.asyncio
class TestDocumentsAndMetadata:
    async def test_document_with_chunks(self, store):
        document = Document(id="doc_1", title="ADR", body="# Context\nWhy\n# Decision\nWhat")
        chunks = [
            Chunk(id="doc_1_chunk_0", document_id="doc_1", chunk_index=0, content="Why"),
            Chunk(id="doc_1_chunk_1", document_id="doc_1", chunk_index=1, content="What", offset=20),
        ]
        async with store.transaction() as session:
            await session.upsert_document(document)
            await session.replace_chunks("doc_1", chunks)

        stored = await store.reader.get_document("doc_1")
        assert stored.title == "ADR"
        assert [c.content for c in stored.chunks] == ["Why", "What"]
        assert stored.chunks[1].offset == 20

        async with store.transaction() as session:
            await session.replace_chunks("doc_1", chunks[:1])
        assert len(await store.reader.list_chunks("doc_1")) == 1
        assert await store.reader.count_documents() == 1

    async def test_metadata_and_cursor(self, store):
        async with store.transaction() as session:
            await session.set_metadata("embedding_dimension", "384")
            await session.set_metadata("embedding_dimension", "768")
            await session.set_cursor("sweep", "node_010")

        assert await store.reader.get_metadata("embedding_dimension") == "768"
        assert await store.reader.get_metadata("missing") is None
        assert await store.reader.get_cursor("sweep") == "node_010"

        async with store.transaction() as session:
            await session.delete_metadata("embedding_dimension")
            await session.delete_metadata("missing")
        assert await store.reader.get_metadata("embedding_dimension") is None

        async with store.transaction() as session:
            await session.clear_cursor("sweep")
        assert await store.reader.get_cursor("sweep") is None
