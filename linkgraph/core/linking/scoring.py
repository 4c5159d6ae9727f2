"""Hybrid edge scoring: semantic, tag-overlap and recency components."""

import hashlib
from datetime import datetime

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity

from linkgraph.config import LinkingConfig
from linkgraph.models.edge import ScoreBreakdown
from linkgraph.models.node import Node
from linkgraph.utils.id_generator import canonical_pair

SCORE_PRECISION = 6


def compute_similarity(embedding1: list[float], embedding2: list[float]) -> float:
    """
    Compute cosine similarity between two embeddings, clamped to [0, 1].

    Mismatched or zero vectors score 0.
    """
    if not embedding1 or not embedding2 or len(embedding1) != len(embedding2):
        return 0.0

    vec1 = np.array(embedding1, dtype=float).reshape(1, -1)
    vec2 = np.array(embedding2, dtype=float).reshape(1, -1)
    if not vec1.any() or not vec2.any():
        return 0.0

    similarity = cosine_similarity(vec1, vec2)[0][0]
    return float(min(1.0, max(0.0, similarity)))


def compute_batch_similarity(
    query_embedding: list[float], embeddings: list[list[float]]
) -> list[float]:
    """
    Compute clamped cosine similarity between a query and multiple embeddings.

    All `embeddings` must share the query's dimension.
    """
    if not embeddings:
        return []

    query_vec = np.array(query_embedding, dtype=float).reshape(1, -1)
    embedding_matrix = np.array(embeddings, dtype=float)

    similarities = cosine_similarity(query_vec, embedding_matrix)[0]
    return np.clip(similarities, 0.0, 1.0).tolist()


def jaccard(a: list[str], b: list[str]) -> float:
    """Jaccard similarity of two tag sets; two empty sets score 0."""
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def recency_bonus(reference: datetime, touched: datetime, half_life_days: float) -> float:
    """
    Exponential decay on the distance between two update times.

    Measured against the subject's own update time rather than the wall
    clock, so re-scoring an unchanged pair always yields the same value.
    """
    delta_days = abs((reference - touched).total_seconds()) / 86400.0
    if half_life_days <= 0:
        return 1.0 if delta_days == 0 else 0.0
    return 0.5 ** (delta_days / half_life_days)


def content_signature(a: Node, b: Node) -> str:
    """Fingerprint of both endpoints' scored content (text and tags)."""
    first, second = (a, b) if (a.id, b.id) == canonical_pair(a.id, b.id) else (b, a)
    material = "|".join(
        f"{node.content_hash}#{','.join(node.tags)}" for node in (first, second)
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()[:16]


class HybridScorer:
    """
    Combines the three sub-scores with explicit weights.

    When either side lacks a usable embedding the semantic weight is
    dropped and the tag and recency weights are renormalized to sum to
    the full weight, so the threshold stays reachable in degraded mode.
    """

    def __init__(self, config: LinkingConfig | None = None):
        self.config = config or LinkingConfig()

    @property
    def weights(self) -> dict[str, float]:
        return {
            "semantic": self.config.semantic_weight,
            "tag": self.config.tag_weight,
            "recency": self.config.recency_weight,
        }

    def _tag_only_weights(self) -> dict[str, float]:
        total = self.config.semantic_weight + self.config.tag_weight + self.config.recency_weight
        rest = self.config.tag_weight + self.config.recency_weight
        if rest <= 0:
            return {"semantic": 0.0, "tag": 0.0, "recency": 0.0}
        return {
            "semantic": 0.0,
            "tag": self.config.tag_weight * total / rest,
            "recency": self.config.recency_weight * total / rest,
        }

    def score(self, subject: Node, candidate: Node) -> tuple[float, ScoreBreakdown]:
        semantic = None
        if (
            subject.has_embedding
            and candidate.has_embedding
            and len(subject.embedding) == len(candidate.embedding)
        ):
            semantic = compute_similarity(subject.embedding, candidate.embedding)
        return self.combine(subject, candidate, semantic)

    def score_many(
        self, subject: Node, candidates: list[Node]
    ) -> list[tuple[Node, float, ScoreBreakdown]]:
        """Score a pool in one vectorized cosine pass."""
        semantic: dict[str, float] = {}
        if subject.has_embedding:
            comparable = [
                node
                for node in candidates
                if node.has_embedding and len(node.embedding) == len(subject.embedding)
            ]
            similarities = compute_batch_similarity(
                subject.embedding, [node.embedding for node in comparable]
            )
            semantic = {node.id: sim for node, sim in zip(comparable, similarities)}

        results = []
        for candidate in candidates:
            score, breakdown = self.combine(subject, candidate, semantic.get(candidate.id))
            results.append((candidate, score, breakdown))
        return results

    def combine(
        self, subject: Node, candidate: Node, semantic: float | None
    ) -> tuple[float, ScoreBreakdown]:
        tag_overlap = jaccard(subject.tags, candidate.tags)
        recency = recency_bonus(
            subject.updated_at, candidate.updated_at, self.config.recency_half_life_days
        )
        weights = self.weights if semantic is not None else self._tag_only_weights()

        score = (
            weights["semantic"] * (semantic or 0.0)
            + weights["tag"] * tag_overlap
            + weights["recency"] * recency
        )
        breakdown = ScoreBreakdown(
            semantic=round(semantic, SCORE_PRECISION) if semantic is not None else None,
            tag_overlap=round(tag_overlap, SCORE_PRECISION),
            recency=round(recency, SCORE_PRECISION),
            shared_tags=sorted(set(subject.tags) & set(candidate.tags)),
            weights={name: round(value, SCORE_PRECISION) for name, value in weights.items()},
        )
        return round(min(1.0, max(0.0, score)), SCORE_PRECISION), breakdown
