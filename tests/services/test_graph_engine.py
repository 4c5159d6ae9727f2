"""
Tests for KnowledgeGraphEngine.

Tests the unified engine integrating store, embeddings, linking,
moderation, query and concurrency.
"""

import pytest

from helpers import ConceptEmbedder
from linkgraph.config import EmbedderConfig
from linkgraph.core.embeddings.client import EmbeddingClient
from linkgraph.core.embeddings.hashing import HashEmbedder
from linkgraph.core.graph_store.sqlite_store import SQLiteGraphStore
from linkgraph.models.edge import EdgeFilter, EdgeState
from linkgraph.models.node import NodeChanges, NodeStatus
from linkgraph.services.graph_engine import RESWEEP_CURSOR, KnowledgeGraphEngine
from linkgraph.utils.exceptions import (
    DimensionMismatch,
    EditConflict,
    NotFoundError,
    ValidationError,
)


async def capture_three(engine):
    postgres = await engine.capture_node("Use PostgreSQL for analytics", tags=["db"])
    selection = await engine.capture_node("Database selection criteria", tags=["db", "planning"])
    standup = await engine.capture_node("Weekly standup notes", tags=["meetings"])
    return postgres, selection, standup


def engine_on(config, client) -> KnowledgeGraphEngine:
    """Second engine sharing the test database file."""
    return KnowledgeGraphEngine(
        store=SQLiteGraphStore(config.store.db_path),
        embedding_client=client,
        config=config,
    )


@pytest.mark.integration
@pytest.mark.asyncio
class TestCaptureAndLink:
    async def test_related_notes_get_suggested_edge(self, engine):
        postgres, selection, standup = await capture_three(engine)

        assert postgres.suggested_edge_ids == []
        assert len(selection.suggested_edge_ids) == 1
        assert standup.suggested_edge_ids == []

        edge = (await engine.list_suggested_edges())[0]
        assert edge.touches(postgres.node_id)
        assert edge.touches(selection.node_id)
        assert edge.state == EdgeState.SUGGESTED
        assert edge.score >= 0.5
        assert edge.breakdown.semantic == pytest.approx(1.0)

    async def test_capture_result(self, engine):
        result = await engine.capture_node("Use PostgreSQL for analytics", tags=["DB"])

        node = await engine.get_node(result.node_id)
        assert result.version == 1
        assert result.embedded
        assert result.degraded_reason is None
        assert node.tags == ["db"]
        assert node.has_embedding

    async def test_title_and_hashtags_from_body(self, engine):
        result = await engine.capture_node(None, body="Try #pgvector for search\nmore text", tags=["db"])

        node = await engine.get_node(result.node_id)
        assert node.title == "Try #pgvector for search"
        assert node.tags == ["db", "pgvector"]

    async def test_empty_capture_rejected(self, engine):
        with pytest.raises(ValidationError):
            await engine.capture_node("  ", body="")

    async def test_search_ranks_database_notes_first(self, engine):
        postgres, selection, standup = await capture_three(engine)

        hits = await engine.search("database")

        assert {hit.node.id for hit in hits[:2]} == {postgres.node_id, selection.node_id}
        assert hits[-1].node.id == standup.node_id

    async def test_search_with_tag_filter(self, engine):
        _, selection, _ = await capture_three(engine)

        hits = await engine.search('tag:planning AND "database"')

        assert [hit.node.id for hit in hits] == [selection.node_id]

    async def test_get_missing_node(self, engine):
        with pytest.raises(NotFoundError):
            await engine.get_node("node_missing")


@pytest.mark.integration
@pytest.mark.asyncio
class TestModerationThroughEngine:
    async def test_accept_then_undo(self, engine):
        _, selection, _ = await capture_three(engine)
        edge_id = selection.suggested_edge_ids[0]

        accepted = await engine.accept_edge(edge_id, "alice")
        restored = await engine.undo_edge(edge_id, "alice")

        assert accepted.state == EdgeState.ACCEPTED
        assert restored.state == EdgeState.SUGGESTED
        events = await engine.list_edge_events(edge_id)
        assert [e.to_state for e in events] == [
            EdgeState.SUGGESTED,
            EdgeState.ACCEPTED,
            EdgeState.SUGGESTED,
        ]

    async def test_connections_default_to_live_edges(self, engine):
        postgres, selection, _ = await capture_three(engine)
        edge_id = selection.suggested_edge_ids[0]

        assert len(await engine.get_node_connections(postgres.node_id)) == 1

        await engine.reject_edge(edge_id, "alice", "unrelated")

        assert await engine.get_node_connections(postgres.node_id) == []
        rejected = await engine.get_node_connections(postgres.node_id, [EdgeState.REJECTED])
        assert [e.id for e in rejected] == [edge_id]

    async def test_promote_and_sweep(self, engine):
        await capture_three(engine)
        await engine.capture_node("SQL schema review", tags=["db"])

        promoted = await engine.promote_edges(EdgeFilter(min_score=0.9), "alice")
        swept = await engine.sweep_edges(EdgeFilter(), "alice", "bulk cleanup")

        stats = await engine.stats()
        assert promoted.count + swept.count == 3
        assert stats.edges_by_state["suggested"] == 0
        assert stats.edges_by_state["accepted"] == promoted.count

    async def test_explain_edge(self, engine):
        _, selection, _ = await capture_three(engine)
        edge_id = selection.suggested_edge_ids[0]

        explained = await engine.explain_edge(edge_id)

        assert explained.current_score == explained.edge.score
        assert explained.current == explained.stored
        assert explained.would_suggest

    async def test_explain_missing_edge(self, engine):
        with pytest.raises(NotFoundError):
            await engine.explain_edge("node_a::node_b")


@pytest.mark.integration
@pytest.mark.asyncio
class TestResweep:
    async def test_resweep_is_idempotent(self, engine):
        await capture_three(engine)
        before = await engine.list_suggested_edges(EdgeFilter(states=[]))
        events_before = (await engine.stats()).edge_events

        result = await engine.resweep_auto_links()

        assert result.nodes_processed == 3
        assert result.count == 0
        assert await engine.list_suggested_edges(EdgeFilter(states=[])) == before
        assert (await engine.stats()).edge_events == events_before

    async def test_resweep_single_node(self, engine):
        postgres, _, _ = await capture_three(engine)

        result = await engine.resweep_auto_links(postgres.node_id)

        assert result.nodes_processed == 1
        assert result.count == 0

    async def test_resweep_resumes_after_cursor(self, engine):
        await capture_three(engine)
        ids = sorted(node.id for node in await engine.store.reader.list_nodes())
        async with engine.store.transaction() as session:
            await session.set_cursor(RESWEEP_CURSOR, ids[0])

        result = await engine.resweep_auto_links()

        assert result.resumed_from == ids[0]
        assert result.nodes_processed == 2
        assert await engine.store.reader.get_cursor(RESWEEP_CURSOR) is None

    async def test_resweep_embeds_and_links_offline_captures(self, config, offline_engine):
        first = await offline_engine.capture_node("Use PostgreSQL for analytics", tags=["db"])
        second = await offline_engine.capture_node("Database selection criteria", tags=["ops"])
        assert not first.embedded
        assert second.suggested_edge_ids == []

        online = engine_on(config, EmbeddingClient(ConceptEmbedder(), config.embedder))
        await online.initialize()
        try:
            result = await online.resweep_auto_links()

            assert result.nodes_embedded == 2
            assert result.edges_created == 1
            assert (await online.get_node(first.node_id)).has_embedding
            assert await online.store.reader.get_metadata("embedding_dimension") == "5"
        finally:
            await online.close()


@pytest.mark.integration
@pytest.mark.asyncio
class TestEditing:
    async def test_edit_relinks_on_content_change(self, engine, embedder):
        postgres, selection, standup = await capture_three(engine)
        calls_before = embedder.calls

        result = await engine.edit_node(
            standup.node_id, 1, {"title": "SQL schema review", "tags": ["db"]}
        )

        assert result.version == 2
        assert result.content_changed
        assert embedder.calls == calls_before + 1
        assert len(result.suggested_edge_ids) == 2
        node = await engine.get_node(standup.node_id)
        assert node.title == "SQL schema review"
        assert node.version == 2

    async def test_stale_edit_conflicts(self, engine):
        postgres = await engine.capture_node("Use PostgreSQL for analytics", tags=["db"])
        await engine.edit_node(postgres.node_id, 1, NodeChanges(body="first edit"))

        with pytest.raises(EditConflict) as exc_info:
            await engine.edit_node(postgres.node_id, 1, NodeChanges(body="second edit"))

        assert exc_info.value.current.version == 2
        assert exc_info.value.current.body == "first edit"

    async def test_tag_only_edit_keeps_embedding(self, engine, embedder):
        postgres = await engine.capture_node("Use PostgreSQL for analytics", tags=["db"])
        calls_before = embedder.calls

        result = await engine.edit_node(postgres.node_id, 1, {"tags": ["db", "analytics"]})

        assert not result.content_changed
        assert embedder.calls == calls_before
        assert result.node.tags == ["analytics", "db"]
        assert result.node.has_embedding

    async def test_empty_edit_is_noop(self, engine):
        postgres = await engine.capture_node("Use PostgreSQL for analytics", tags=["db"])

        result = await engine.edit_node(postgres.node_id, 1, NodeChanges())

        assert result.version == 1


@pytest.mark.integration
@pytest.mark.asyncio
class TestDegradedMode:
    async def test_capture_without_provider(self, offline_engine):
        first = await offline_engine.capture_node("First", tags=["project-x"])
        second = await offline_engine.capture_node("Second", tags=["project-x"])

        assert not first.embedded
        assert first.degraded_reason
        assert len(second.suggested_edge_ids) == 1
        edge = (await offline_engine.list_suggested_edges())[0]
        assert edge.breakdown.tag_only

    async def test_search_without_provider(self, offline_engine):
        await offline_engine.capture_node("Weekly standup notes", tags=["meetings"])

        hits = await offline_engine.search("standup")

        assert hits[0].score > 0


@pytest.mark.integration
@pytest.mark.asyncio
class TestDimensionDrift:
    async def test_mismatch_blocks_writes_until_reconciled(self, config, engine):
        await engine.capture_node("Use PostgreSQL for analytics", tags=["db"])

        drifted_config = EmbedderConfig(
            provider="hash", dimension=3, max_retries=0, retry_backoff=0.0
        )
        drifted = engine_on(config, EmbeddingClient(HashEmbedder(dimension=3), drifted_config))
        await drifted.initialize()
        try:
            assert drifted.embeddings.halted is not None
            with pytest.raises(DimensionMismatch):
                await drifted.capture_node("Database selection criteria", tags=["db"])

            dropped = await drifted.reconcile_embeddings(3)

            assert dropped == 1
            result = await drifted.capture_node("Database selection criteria", tags=["db"])
            assert result.embedded
            assert await drifted.store.reader.get_metadata("embedding_dimension") == "3"
        finally:
            await drifted.close()

    async def test_reconcile_without_dimension_survives_restart(self, config, engine):
        await engine.capture_node("Use PostgreSQL for analytics", tags=["db"])
        await engine.close()

        def hash_client(dimension):
            client_config = EmbedderConfig(provider="hash", max_retries=0, retry_backoff=0.0)
            return EmbeddingClient(HashEmbedder(dimension=dimension), client_config)

        drifted = engine_on(config, hash_client(8))
        await drifted.initialize()
        try:
            with pytest.raises(DimensionMismatch):
                await drifted.capture_node("Database selection criteria", tags=["db"])

            assert await drifted.reconcile_embeddings() == 1
            assert await drifted.store.reader.get_metadata("embedding_dimension") is None

            await drifted.capture_node("Database selection criteria", tags=["db"])
            assert await drifted.store.reader.get_metadata("embedding_dimension") == "8"
        finally:
            await drifted.close()

        restarted = engine_on(config, hash_client(8))
        await restarted.initialize()
        try:
            assert restarted.embeddings.halted is None
            result = await restarted.capture_node("Weekly standup notes", tags=["meetings"])
            assert result.embedded
        finally:
            await restarted.close()


@pytest.mark.integration
@pytest.mark.asyncio
class TestNodeLifecycle:
    async def test_delete_hides_from_search_keeps_edges(self, engine):
        postgres, selection, _ = await capture_three(engine)

        deleted = await engine.delete_node(postgres.node_id, 1)

        assert deleted.status == NodeStatus.DELETED
        assert postgres.node_id not in {hit.node.id for hit in await engine.search("database")}
        assert (await engine.get_node(postgres.node_id)).deleted_at is not None
        assert len(await engine.get_node_connections(selection.node_id)) == 1

        restored = await engine.restore_node(postgres.node_id)
        assert restored.is_active

    async def test_delete_requires_current_version(self, engine):
        postgres = await engine.capture_node("Use PostgreSQL for analytics", tags=["db"])

        with pytest.raises(EditConflict):
            await engine.delete_node(postgres.node_id, 5)

    async def test_purge_removes_edges_keeps_audit(self, engine):
        postgres, selection, _ = await capture_three(engine)
        edge_id = selection.suggested_edge_ids[0]

        removed = await engine.purge_node(postgres.node_id)

        assert removed == 1
        with pytest.raises(NotFoundError):
            await engine.get_node(postgres.node_id)
        assert await engine.list_suggested_edges() == []
        assert len(await engine.list_edge_events(edge_id)) == 1

    async def test_layout_position(self, engine):
        postgres = await engine.capture_node("Use PostgreSQL for analytics", tags=["db"])

        node = await engine.set_layout_position(postgres.node_id, 10.0, -4.5)

        assert (node.layout_position.x, node.layout_position.y) == (10.0, -4.5)
        assert node.version == 1
        with pytest.raises(NotFoundError):
            await engine.set_layout_position("node_missing", 0.0, 0.0)

    async def test_stats(self, engine):
        await capture_three(engine)

        stats = await engine.stats()

        assert stats.nodes == 3
        assert stats.deleted_nodes == 0
        assert stats.edges_by_state["suggested"] == 1
        assert stats.edge_events == 1
        assert stats.documents == 0


@pytest.mark.integration
@pytest.mark.asyncio
class TestHealth:
    async def test_healthy_with_live_provider(self, engine):
        await capture_three(engine)

        report = await engine.health()

        assert report.status == "healthy"
        assert report.store_reachable
        assert report.nodes == 3
        assert report.edges == 1
        assert report.embedding_model == "ConceptEmbedder:concept-test"
        assert report.embedding_available
        assert report.embedding_dimension == 5
        assert report.probe_dimension == 5
        assert not report.halted
        assert report.embedding_error is None

    async def test_offline_provider_is_degraded(self, offline_engine):
        await offline_engine.capture_node("Use PostgreSQL for analytics", tags=["db"])

        report = await offline_engine.health()

        assert report.status == "degraded"
        assert report.store_reachable
        assert report.nodes == 1
        assert not report.embedding_available
        assert report.probe_dimension is None
        assert report.embedding_error == "Embedding provider is disabled"

    async def test_closed_store_is_unhealthy(self, engine):
        await engine.store.close()

        report = await engine.health()

        assert report.status == "unhealthy"
        assert not report.store_reachable
        assert "not connected" in report.store_error
        assert report.embedding_available

    async def test_halted_client_is_reported(self, config, engine):
        await engine.capture_node("Use PostgreSQL for analytics", tags=["db"])

        drifted_config = EmbedderConfig(
            provider="hash", dimension=3, max_retries=0, retry_backoff=0.0
        )
        drifted = engine_on(config, EmbeddingClient(HashEmbedder(dimension=3), drifted_config))
        await drifted.initialize()
        try:
            report = await drifted.health()
        finally:
            await drifted.close()

        assert report.status == "degraded"
        assert report.halted
        assert report.embedding_available
        assert report.probe_dimension == 3
        assert "mismatch" in report.embedding_error


@pytest.mark.integration
@pytest.mark.asyncio
class TestFromConfig:
    async def test_from_config_with_hash_embedder(self, config):
        engine = KnowledgeGraphEngine.from_config(config, configure_logging=False)
        await engine.initialize()
        try:
            first = await engine.capture_node("Vector database indexing", tags=["db"])
            second = await engine.capture_node("Vector database indexing notes", tags=["db"])

            assert first.embedded
            assert len(second.suggested_edge_ids) == 1
        finally:
            await engine.close()
