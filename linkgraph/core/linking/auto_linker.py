"""
Auto-linker: proposes `suggested` edges for a subject node.

Pipeline:
1. Bounded candidate pool (shared tags, vector top-N, existing suggestions)
2. Hybrid score per candidate
3. Threshold and decided-pair guard
4. Deterministic sort, top-K
5. Upsert as `suggested` inside one store transaction

Ranking reads committed data without holding the write lock; the guard
and the upsert re-read the pair inside the transaction.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from linkgraph.config import LinkingConfig
from linkgraph.core.graph_store.base import GraphSession, GraphStore
from linkgraph.core.linking.scoring import (
    HybridScorer,
    compute_batch_similarity,
    content_signature,
)
from linkgraph.models.edge import Edge, EdgeEvent, EdgeState, ScoreBreakdown
from linkgraph.models.node import Node, NodeStatus
from linkgraph.utils.datetime_utils import utc_now
from linkgraph.utils.exceptions import PairAlreadyDecided
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)

AUTO_LINKER_ACTOR = "auto-linker"
SYSTEM_ACTOR = "system"
SCAN_PAGE_SIZE = 500


class LinkCandidate(BaseModel):
    """One scored candidate for a subject node."""

    node_id: str
    score: float
    breakdown: ScoreBreakdown
    updated_at: datetime


class LinkResult(BaseModel):
    """Outcome of linking one subject node."""

    node_id: str
    suggested_edge_ids: list[str] = Field(default_factory=list)
    created: int = 0
    updated: int = 0
    reopened: int = 0
    skipped_decided: int = 0
    stale: bool = False

    @property
    def changed(self) -> int:
        return self.created + self.updated + self.reopened


def rank_key(candidate: LinkCandidate) -> tuple:
    """Score desc, then most recently touched, then node id."""
    return (-candidate.score, -candidate.updated_at.timestamp(), candidate.node_id)


class AutoLinker:
    """Candidate generator and suggestion writer."""

    def __init__(
        self,
        store: GraphStore,
        config: LinkingConfig | None = None,
        scorer: HybridScorer | None = None,
    ):
        """
        Initialize auto-linker.

        Args:
            store: Graph store (reads via its reader, writes via transactions)
            config: Linking thresholds, weights and pool bounds
            scorer: Hybrid scorer (built from `config` when omitted)
        """
        self.store = store
        self.config = config or LinkingConfig()
        self.scorer = scorer or HybridScorer(self.config)

    # ═══════════════════════════════════════════════════════════
    # RANKING
    # ═══════════════════════════════════════════════════════════

    async def candidate_pool(self, subject: Node, session: GraphSession | None = None) -> list[Node]:
        """
        Bounded pool of nodes worth scoring against `subject`.

        Union of nodes sharing a tag, the top-N nearest by embedding and
        the endpoints of the subject's current suggestions (so their
        scores get refreshed).
        """
        session = session or self.store.reader
        pool: dict[str, Node] = {}

        for node in await session.nodes_with_any_tag(
            subject.tags, exclude_id=subject.id, limit=self.config.tag_pool_limit
        ):
            pool[node.id] = node

        for node in await self._nearest_by_embedding(session, subject):
            pool.setdefault(node.id, node)

        for edge in await session.edges_for_node(subject.id, [EdgeState.SUGGESTED]):
            other_id = edge.other(subject.id)
            if other_id in pool:
                continue
            other = await session.get_node(other_id)
            if other is not None and other.is_active:
                pool[other.id] = other

        pool.pop(subject.id, None)
        return list(pool.values())

    async def _nearest_by_embedding(self, session: GraphSession, subject: Node) -> list[Node]:
        """Top-N active nodes by cosine, scanned page by page."""
        limit = self.config.vector_pool_limit
        if not subject.has_embedding or limit <= 0:
            return []

        best: list[tuple[float, Node]] = []
        after_id = None
        while True:
            page = await session.list_nodes(
                status=NodeStatus.ACTIVE, after_id=after_id, limit=SCAN_PAGE_SIZE
            )
            if not page:
                break
            after_id = page[-1].id

            comparable = [
                node
                for node in page
                if node.id != subject.id
                and node.has_embedding
                and len(node.embedding) == len(subject.embedding)
            ]
            similarities = compute_batch_similarity(
                subject.embedding, [node.embedding for node in comparable]
            )
            best.extend(zip(similarities, comparable))
            best = sorted(best, key=lambda item: (-item[0], item[1].id))[:limit]

            if len(page) < SCAN_PAGE_SIZE:
                break

        return [node for _, node in best]

    async def rank_candidates(
        self, subject: Node, session: GraphSession | None = None
    ) -> list[LinkCandidate]:
        """
        Score the whole pool and return it in rank order.

        No threshold or pair guard is applied here.
        """
        ranked, _ = await self._rank(subject, session)
        return ranked

    async def _rank(
        self, subject: Node, session: GraphSession | None = None
    ) -> tuple[list[LinkCandidate], dict[str, Node]]:
        pool = await self.candidate_pool(subject, session)
        ranked = [
            LinkCandidate(
                node_id=node.id,
                score=score,
                breakdown=breakdown,
                updated_at=node.updated_at,
            )
            for node, score, breakdown in self.scorer.score_many(subject, pool)
        ]
        ranked.sort(key=rank_key)
        return ranked, {node.id: node for node in pool}

    # ═══════════════════════════════════════════════════════════
    # LINKING
    # ═══════════════════════════════════════════════════════════

    async def link_node(self, node_id: str, force_reevaluate: bool = False) -> LinkResult:
        """
        Generate or refresh suggestions for one node.

        Safe to re-run: an unchanged node produces no new edges and leaves
        existing scores untouched.

        Args:
            node_id: Subject node
            force_reevaluate: Re-suggest pairs that were rejected

        Returns:
            LinkResult with the suggested edge ids kept for this node
        """
        result = LinkResult(node_id=node_id)

        subject = await self.store.reader.get_node(node_id)
        if subject is None or not subject.is_active:
            return result

        ranked, nodes_by_id = await self._rank(subject)

        async with self.store.transaction() as session:
            current = await session.get_node(node_id)
            if (
                current is None
                or not current.is_active
                or current.version != subject.version
            ):
                # a newer edit re-links on its own
                result.stale = True
                logger.debug(f"Skipping stale link run for {node_id}")
                return result

            eligible: list[LinkCandidate] = []
            for candidate in ranked:
                existing = await session.get_edge_for_pair(subject.id, candidate.node_id)

                if existing is not None and existing.state == EdgeState.SUGGESTED:
                    if candidate.score < self.config.min_score:
                        # keep the stored score honest without promoting it into top-K
                        if await self._refresh_suggestion(
                            session, existing, candidate, subject, nodes_by_id[candidate.node_id]
                        ):
                            result.updated += 1
                        continue

                if candidate.score < self.config.min_score:
                    continue

                if existing is not None and existing.state == EdgeState.ACCEPTED:
                    result.skipped_decided += 1
                    continue

                if (
                    existing is not None
                    and existing.state == EdgeState.REJECTED
                    and not force_reevaluate
                    and existing.content_signature
                    == content_signature(subject, nodes_by_id[candidate.node_id])
                ):
                    result.skipped_decided += 1
                    continue

                eligible.append(candidate)

            kept = eligible[: self.config.top_k]
            for candidate in kept:
                other = nodes_by_id[candidate.node_id]
                try:
                    outcome, edge = await self.upsert_suggestion(
                        session, subject, other, candidate, force_reevaluate
                    )
                except PairAlreadyDecided as e:
                    result.skipped_decided += 1
                    logger.debug(f"Pair already decided: {e.edge_id} ({e.state})")
                    continue

                result.suggested_edge_ids.append(edge.id)
                if outcome == "created":
                    result.created += 1
                elif outcome == "updated":
                    result.updated += 1
                elif outcome == "reopened":
                    result.reopened += 1

            # suggestions above threshold that fell out of top-K still get fresh scores
            for candidate in eligible[self.config.top_k :]:
                existing = await session.get_edge_for_pair(subject.id, candidate.node_id)
                if existing is not None and existing.state == EdgeState.SUGGESTED:
                    if await self._refresh_suggestion(
                        session, existing, candidate, subject, nodes_by_id[candidate.node_id]
                    ):
                        result.updated += 1

        if result.changed:
            logger.info(
                f"Linked node {node_id}",
                extra={
                    "node_id": node_id,
                    "created": result.created,
                    "updated": result.updated,
                    "reopened": result.reopened,
                },
            )
        return result

    async def upsert_suggestion(
        self,
        session: GraphSession,
        subject: Node,
        other: Node,
        candidate: LinkCandidate,
        force_reevaluate: bool = False,
    ) -> tuple[str, Edge]:
        """
        Insert or update the `suggested` edge for a pair.

        Returns:
            ("created" | "updated" | "reopened" | "unchanged", edge)

        Raises:
            PairAlreadyDecided: Pair is accepted, or rejected with unchanged
                content and no force flag
        """
        signature = content_signature(subject, other)
        existing = await session.get_edge_for_pair(subject.id, other.id)
        now = utc_now()

        if existing is None:
            edge = Edge(
                source_id=subject.id,
                target_id=other.id,
                state=EdgeState.SUGGESTED,
                score=candidate.score,
                breakdown=candidate.breakdown,
                content_signature=signature,
                created_at=now,
                updated_at=now,
            )
            await session.insert_edge(edge)
            await session.append_edge_event(
                EdgeEvent(
                    edge_id=edge.id,
                    source_id=edge.source_id,
                    target_id=edge.target_id,
                    from_state=None,
                    to_state=EdgeState.SUGGESTED,
                    actor=AUTO_LINKER_ACTOR,
                    timestamp=now,
                    payload={"score": candidate.score},
                )
            )
            return "created", edge

        if existing.state == EdgeState.ACCEPTED:
            raise PairAlreadyDecided(existing.id, existing.state.value)

        if existing.state == EdgeState.REJECTED:
            content_changed = existing.content_signature != signature
            if not (force_reevaluate or content_changed):
                raise PairAlreadyDecided(existing.id, existing.state.value)

            reason = "force re-evaluate" if force_reevaluate else "content changed"
            edge = existing.model_copy(
                update={
                    "state": EdgeState.SUGGESTED,
                    "score": candidate.score,
                    "breakdown": candidate.breakdown,
                    "content_signature": signature,
                    "decision_reason": None,
                    "decided_at": None,
                    "decided_by": None,
                    "updated_at": now,
                }
            )
            await session.update_edge(edge)
            await session.append_edge_event(
                EdgeEvent(
                    edge_id=edge.id,
                    source_id=edge.source_id,
                    target_id=edge.target_id,
                    from_state=EdgeState.REJECTED,
                    to_state=EdgeState.SUGGESTED,
                    actor=SYSTEM_ACTOR,
                    timestamp=now,
                    reason=reason,
                    payload={"score": candidate.score},
                )
            )
            logger.info(f"Reopened rejected edge {edge.id}", extra={"reason": reason})
            return "reopened", edge

        if await self._refresh_suggestion(session, existing, candidate, subject, other):
            return "updated", await session.get_edge(existing.id)
        return "unchanged", existing

    async def _refresh_suggestion(
        self,
        session: GraphSession,
        existing: Edge,
        candidate: LinkCandidate,
        subject: Node,
        other: Node,
    ) -> bool:
        signature = content_signature(subject, other)
        if existing.score == candidate.score and existing.content_signature == signature:
            return False

        await session.update_edge(
            existing.model_copy(
                update={
                    "score": candidate.score,
                    "breakdown": candidate.breakdown,
                    "content_signature": signature,
                    "updated_at": utc_now(),
                }
            )
        )
        return True

