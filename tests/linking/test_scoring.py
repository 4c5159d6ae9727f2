"""
Tests for hybrid scoring components.
"""

from datetime import timedelta

import pytest

from helpers import BASE_TIME, make_node
from linkgraph.config import LinkingConfig
from linkgraph.core.linking.scoring import (
    HybridScorer,
    compute_batch_similarity,
    compute_similarity,
    content_signature,
    jaccard,
    recency_bonus,
)

DB = [1.0, 0.0, 0.0]
MEETING = [0.0, 1.0, 0.0]


@pytest.mark.unit
class TestComponents:
    def test_cosine_identical_and_orthogonal(self):
        assert compute_similarity(DB, DB) == pytest.approx(1.0)
        assert compute_similarity(DB, MEETING) == pytest.approx(0.0)

    def test_cosine_clamped_at_zero(self):
        assert compute_similarity([1.0, 0.0], [-1.0, 0.0]) == 0.0

    def test_cosine_mismatched_or_zero_vectors(self):
        assert compute_similarity([1.0, 0.0], [1.0, 0.0, 0.0]) == 0.0
        assert compute_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0
        assert compute_similarity([], [1.0]) == 0.0

    def test_batch_similarity(self):
        scores = compute_batch_similarity(DB, [DB, MEETING, [-1.0, 0.0, 0.0]])

        assert scores == pytest.approx([1.0, 0.0, 0.0])
        assert compute_batch_similarity(DB, []) == []

    def test_jaccard(self):
        assert jaccard(["db"], ["db", "planning"]) == 0.5
        assert jaccard(["a"], ["b"]) == 0.0
        assert jaccard([], []) == 0.0

    def test_recency_half_life(self):
        assert recency_bonus(BASE_TIME, BASE_TIME, 30.0) == 1.0
        assert recency_bonus(BASE_TIME, BASE_TIME - timedelta(days=30), 30.0) == pytest.approx(0.5)

    def test_recency_is_symmetric(self):
        earlier = BASE_TIME - timedelta(days=7)

        assert recency_bonus(BASE_TIME, earlier, 30.0) == recency_bonus(earlier, BASE_TIME, 30.0)

    def test_signature_is_order_independent(self):
        a = make_node("A", ["x"], node_id="node_a")
        b = make_node("B", ["y"], node_id="node_b")

        assert content_signature(a, b) == content_signature(b, a)
        assert len(content_signature(a, b)) == 16

    def test_signature_tracks_tags_and_text(self):
        a = make_node("A", ["x"], node_id="node_a")
        b = make_node("B", ["y"], node_id="node_b")
        retagged = b.model_copy(update={"tags": ["y", "z"]})
        rewritten = make_node("B changed", ["y"], node_id="node_b")

        assert content_signature(a, b) != content_signature(a, retagged)
        assert content_signature(a, b) != content_signature(a, rewritten)


@pytest.mark.unit
class TestHybridScorer:
    def test_weighted_sum(self):
        scorer = HybridScorer(LinkingConfig())
        subject = make_node("Use PostgreSQL", ["db"], DB)
        candidate = make_node(
            "Database selection", ["db", "planning"], DB, updated_at=BASE_TIME - timedelta(days=1)
        )

        score, breakdown = scorer.score(subject, candidate)

        expected = 0.7 * 1.0 + 0.25 * 0.5 + 0.05 * 0.5 ** (1 / 30)
        assert score == pytest.approx(expected, abs=1e-6)
        assert breakdown.semantic == pytest.approx(1.0)
        assert breakdown.tag_overlap == 0.5
        assert breakdown.shared_tags == ["db"]
        assert breakdown.weights == {"semantic": 0.7, "tag": 0.25, "recency": 0.05}
        assert not breakdown.tag_only

    def test_score_is_symmetric(self):
        scorer = HybridScorer()
        a = make_node("A", ["db"], DB)
        b = make_node("B", ["db", "ml"], [0.8, 0.6, 0.0], updated_at=BASE_TIME - timedelta(days=3))

        assert scorer.score(a, b) == scorer.score(b, a)

    def test_tag_only_renormalizes_weights(self):
        scorer = HybridScorer(LinkingConfig())
        subject = make_node("A", ["db"], None)
        candidate = make_node("B", ["db"], DB)

        score, breakdown = scorer.score(subject, candidate)

        assert breakdown.semantic is None
        assert breakdown.tag_only
        assert breakdown.weights["tag"] == pytest.approx(0.25 / 0.3, abs=1e-6)
        assert breakdown.weights["recency"] == pytest.approx(0.05 / 0.3, abs=1e-6)
        # identical tags and timestamps reach the full score without embeddings
        assert score == pytest.approx(1.0)

    def test_dimension_mismatch_falls_back_to_tags(self):
        scorer = HybridScorer()
        subject = make_node("A", ["db"], [1.0, 0.0])
        candidate = make_node("B", ["db"], DB)

        _, breakdown = scorer.score(subject, candidate)

        assert breakdown.semantic is None

    def test_score_many_matches_score(self):
        scorer = HybridScorer()
        subject = make_node("A", ["db"], DB)
        candidates = [
            make_node("B", ["db"], [0.6, 0.8, 0.0]),
            make_node("C", [], MEETING, updated_at=BASE_TIME - timedelta(days=10)),
            make_node("D", ["db"], None),
        ]

        batched = scorer.score_many(subject, candidates)

        for node, score, breakdown in batched:
            single_score, single_breakdown = scorer.score(subject, node)
            assert score == pytest.approx(single_score, abs=1e-6)
            assert breakdown.tag_only == single_breakdown.tag_only
