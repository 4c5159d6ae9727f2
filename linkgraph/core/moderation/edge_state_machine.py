"""
Edge lifecycle: accept, reject, undo and their batch variants.

Every transition runs inside a store transaction that re-reads the edge,
so racing decisions on one edge resolve first-writer-wins and the loser
gets InvalidTransition. Each transition appends an EdgeEvent; undo is
derived from that log, never from the mutable edge row alone.

Batch operations (promote/sweep) commit per source node: all suggested
edges whose canonical source is the same node are decided in one
transaction, and several such groups may share a transaction up to
`batch_group_size` edges. A failure aborts the current transaction only;
groups committed before it stay applied. Because decided edges leave the
`suggested` state, re-running the same batch resumes where it stopped.
"""

from collections import defaultdict
from datetime import timedelta

from linkgraph.config import ModerationConfig
from linkgraph.core.graph_store.base import GraphSession, GraphStore
from linkgraph.models.edge import BatchResult, Edge, EdgeEvent, EdgeFilter, EdgeState
from linkgraph.utils.datetime_utils import utc_now
from linkgraph.utils.exceptions import InvalidTransition, NoUndoAvailable
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)


def replay_state(events: list[EdgeEvent]) -> EdgeState | None:
    """
    Rebuild an edge's state from its event log.

    Args:
        events: Events for one edge, ascending by seq

    Returns:
        State after the last event, or None for an empty log
    """
    state = None
    for event in events:
        if event.from_state != state:
            logger.warning(
                f"Event #{event.seq} on {event.edge_id} does not follow the previous state",
                extra={"expected": state, "from_state": event.from_state},
            )
        state = event.to_state
    return state


def find_undo_target(events: list[EdgeEvent]) -> EdgeEvent | None:
    """
    The most recent transition that has not been reverted yet.

    Undo events themselves are never undo targets, and the creation event
    (no prior state) cannot be reverted.
    """
    reverted = {event.reverts_seq for event in events if event.is_undo}
    for event in reversed(events):
        if event.is_undo or event.seq in reverted:
            continue
        return event if event.from_state is not None else None
    return None


class EdgeStateMachine:
    """Applies moderation actions and writes the audit trail."""

    def __init__(self, store: GraphStore, config: ModerationConfig | None = None):
        self.store = store
        self.config = config or ModerationConfig()

    # ═══════════════════════════════════════════════════════════
    # SINGLE-EDGE TRANSITIONS
    # ═══════════════════════════════════════════════════════════

    async def accept(self, edge_id: str, actor: str, reason: str | None = None) -> Edge:
        """
        Move a suggested edge to accepted.

        Accepting an accepted edge is a no-op.

        Raises:
            InvalidTransition: Edge missing or rejected
        """
        async with self.store.transaction() as session:
            edge = await session.get_edge(edge_id)
            if edge is None:
                raise InvalidTransition(edge_id, None, EdgeState.ACCEPTED.value)
            if edge.state == EdgeState.ACCEPTED:
                return edge
            if edge.state != EdgeState.SUGGESTED:
                raise InvalidTransition(edge_id, edge.state.value, EdgeState.ACCEPTED.value)

            edge = await self._transition(session, edge, EdgeState.ACCEPTED, actor, reason)

        logger.info(f"Edge accepted: {edge_id}", extra={"edge_id": edge_id, "actor": actor})
        return edge

    async def reject(self, edge_id: str, actor: str, reason: str | None = None) -> Edge:
        """
        Move a suggested edge to rejected.

        Rejecting a rejected edge only updates its reason (no new event).

        Raises:
            InvalidTransition: Edge missing or accepted
        """
        async with self.store.transaction() as session:
            edge = await session.get_edge(edge_id)
            if edge is None:
                raise InvalidTransition(edge_id, None, EdgeState.REJECTED.value)

            if edge.state == EdgeState.REJECTED:
                if reason is not None and reason != edge.decision_reason:
                    edge = edge.model_copy(update={"decision_reason": reason, "updated_at": utc_now()})
                    await session.update_edge(edge)
                return edge

            if edge.state != EdgeState.SUGGESTED:
                raise InvalidTransition(edge_id, edge.state.value, EdgeState.REJECTED.value)

            edge = await self._transition(session, edge, EdgeState.REJECTED, actor, reason)

        logger.info(f"Edge rejected: {edge_id}", extra={"edge_id": edge_id, "actor": actor})
        return edge

    async def undo(self, edge_id: str, actor: str) -> Edge:
        """
        Revert the most recent transition recorded for an edge.

        Raises:
            NoUndoAvailable: No reversible transition, or the undo window elapsed
        """
        async with self.store.transaction() as session:
            edge = await session.get_edge(edge_id)
            if edge is None:
                raise NoUndoAvailable(f"Edge {edge_id} does not exist", {"edge_id": edge_id})

            events = await session.list_edge_events(edge_id)
            target = find_undo_target(events)
            if target is None:
                raise NoUndoAvailable(
                    f"Nothing to undo for edge {edge_id}", {"edge_id": edge_id}
                )

            now = utc_now()
            window = timedelta(seconds=self.config.undo_window_seconds)
            if now - target.timestamp > window:
                raise NoUndoAvailable(
                    f"Undo window elapsed for edge {edge_id}",
                    {
                        "edge_id": edge_id,
                        "event_seq": target.seq,
                        "window_seconds": self.config.undo_window_seconds,
                    },
                )

            logged_state = replay_state(events)
            if logged_state != edge.state:
                logger.warning(
                    f"Edge {edge_id} row state differs from its event log; using the log",
                    extra={"row_state": edge.state.value, "log_state": logged_state},
                )

            restored = target.from_state
            # decision metadata of the state being restored, if it was a decision
            decision = next(
                (
                    event
                    for event in reversed(events)
                    if event.seq < target.seq and event.to_state == restored
                ),
                None,
            )
            if restored == EdgeState.SUGGESTED or decision is None:
                update = {"decided_at": None, "decided_by": None, "decision_reason": None}
            else:
                update = {
                    "decided_at": decision.timestamp,
                    "decided_by": decision.actor,
                    "decision_reason": decision.reason,
                }
            edge = edge.model_copy(update={"state": restored, "updated_at": now, **update})
            await session.update_edge(edge)
            await session.append_edge_event(
                EdgeEvent(
                    edge_id=edge.id,
                    source_id=edge.source_id,
                    target_id=edge.target_id,
                    from_state=target.to_state,
                    to_state=restored,
                    actor=actor,
                    timestamp=now,
                    reason=f"undo of #{target.seq}",
                    reverts_seq=target.seq,
                )
            )

        logger.info(
            f"Edge {edge_id} reverted to {restored.value}",
            extra={"edge_id": edge_id, "actor": actor, "reverts_seq": target.seq},
        )
        return edge

    async def derive_state(self, edge_id: str) -> EdgeState | None:
        """Current state as recorded by the event log."""
        return replay_state(await self.store.reader.list_edge_events(edge_id))

    async def _transition(
        self,
        session: GraphSession,
        edge: Edge,
        to_state: EdgeState,
        actor: str,
        reason: str | None,
    ) -> Edge:
        now = utc_now()
        updated = edge.model_copy(
            update={
                "state": to_state,
                "decided_at": now,
                "decided_by": actor,
                "decision_reason": reason,
                "updated_at": now,
            }
        )
        await session.update_edge(updated)
        await session.append_edge_event(
            EdgeEvent(
                edge_id=edge.id,
                source_id=edge.source_id,
                target_id=edge.target_id,
                from_state=edge.state,
                to_state=to_state,
                actor=actor,
                timestamp=now,
                reason=reason,
                payload={"score": edge.score},
            )
        )
        return updated

    # ═══════════════════════════════════════════════════════════
    # BATCH OPERATIONS
    # ═══════════════════════════════════════════════════════════

    async def promote(self, edge_filter: EdgeFilter, actor: str) -> BatchResult:
        """Accept every suggested edge matching the filter."""
        return await self._apply_batch(edge_filter, EdgeState.ACCEPTED, actor, None)

    async def sweep(
        self, edge_filter: EdgeFilter, actor: str, reason: str | None = None
    ) -> BatchResult:
        """Reject every suggested edge matching the filter."""
        return await self._apply_batch(edge_filter, EdgeState.REJECTED, actor, reason)

    async def _apply_batch(
        self,
        edge_filter: EdgeFilter,
        to_state: EdgeState,
        actor: str,
        reason: str | None,
    ) -> BatchResult:
        selection = edge_filter.model_copy(update={"states": [EdgeState.SUGGESTED]})
        edges = await self.store.reader.list_edges(selection)

        by_source: dict[str, list[Edge]] = defaultdict(list)
        for edge in edges:
            by_source[edge.source_id].append(edge)

        result = BatchResult()
        for group in self._pack_groups(by_source):
            async with self.store.transaction() as session:
                for candidate in group:
                    edge = await session.get_edge(candidate.id)
                    # re-checked under the write lock; decided meanwhile means skip
                    if edge is None or edge.state != EdgeState.SUGGESTED or not selection.matches(edge):
                        result.skipped.append(candidate.id)
                        continue
                    await self._transition(session, edge, to_state, actor, reason)
                    result.edge_ids.append(edge.id)
            result.groups += 1

        result.count = len(result.edge_ids)
        logger.info(
            f"Batch {to_state.value}: {result.count} edges",
            extra={
                "actor": actor,
                "count": result.count,
                "skipped": len(result.skipped),
                "groups": result.groups,
            },
        )
        return result

    def _pack_groups(self, by_source: dict[str, list[Edge]]) -> list[list[Edge]]:
        """Whole per-source groups, packed into transactions of bounded size."""
        size = max(1, self.config.batch_group_size)
        packed: list[list[Edge]] = []
        current: list[Edge] = []
        for source_id in sorted(by_source):
            group = by_source[source_id]
            if current and len(current) + len(group) > size:
                packed.append(current)
                current = []
            current.extend(group)
        if current:
            packed.append(current)
        return packed
