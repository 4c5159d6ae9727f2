"""
Edge models: lifecycle state, score breakdown and the audit event log.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from linkgraph.utils.datetime_utils import utc_now
from linkgraph.utils.id_generator import canonical_pair, generate_edge_id


class EdgeState(str, Enum):
    """Edge lifecycle states."""

    SUGGESTED = "suggested"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ScoreBreakdown(BaseModel):
    """
    Component scores retained for explainability.

    `semantic` is None when either side had no embedding and the score was
    computed from tags and recency only.
    """

    semantic: float | None = None
    tag_overlap: float = 0.0
    recency: float = 0.0
    shared_tags: list[str] = Field(default_factory=list)
    weights: dict[str, float] = Field(default_factory=dict)

    @property
    def tag_only(self) -> bool:
        return self.semantic is None


class Edge(BaseModel):
    """
    Undirected relation between two nodes, stored with the smaller id first.

    At most one edge exists per unordered pair; its id is derived from the
    pair so regeneration updates in place.
    """

    id: str = ""
    source_id: str
    target_id: str
    state: EdgeState = EdgeState.SUGGESTED
    score: float = 0.0
    breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    # content hashes of both endpoints when the edge was last scored
    content_signature: str = ""
    decision_reason: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    decided_at: datetime | None = None
    decided_by: str | None = None

    @model_validator(mode="after")
    def _canonicalize(self) -> "Edge":
        if self.source_id == self.target_id:
            raise ValueError("Self-loop edges are not allowed")
        source, target = canonical_pair(self.source_id, self.target_id)
        self.source_id = source
        self.target_id = target
        if not self.id:
            self.id = generate_edge_id(source, target)
        return self

    def touches(self, node_id: str) -> bool:
        return node_id in (self.source_id, self.target_id)

    def other(self, node_id: str) -> str:
        """The endpoint opposite `node_id`."""
        return self.target_id if node_id == self.source_id else self.source_id


class EdgeEvent(BaseModel):
    """
    Immutable audit record of one edge state transition.

    `seq` is assigned by the store and is strictly increasing, which gives
    a total order per edge. An undo is itself an event whose `reverts_seq`
    points at the transition it reverted.
    """

    model_config = {"frozen": True}

    seq: int | None = None
    edge_id: str
    source_id: str
    target_id: str
    from_state: EdgeState | None
    to_state: EdgeState
    actor: str
    timestamp: datetime = Field(default_factory=utc_now)
    reason: str | None = None
    reverts_seq: int | None = None
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_undo(self) -> bool:
        return self.reverts_seq is not None


class EdgeFilter(BaseModel):
    """Selection criteria for listing and batch moderation."""

    node_id: str | None = None
    min_score: float | None = None
    max_score: float | None = None
    states: list[EdgeState] = Field(default_factory=lambda: [EdgeState.SUGGESTED])
    limit: int | None = None
    offset: int = 0

    def matches(self, edge: Edge) -> bool:
        if self.states and edge.state not in self.states:
            return False
        if self.node_id and not edge.touches(self.node_id):
            return False
        if self.min_score is not None and edge.score < self.min_score:
            return False
        if self.max_score is not None and edge.score > self.max_score:
            return False
        return True


class BatchResult(BaseModel):
    """Outcome of promote/sweep."""

    count: int = 0
    edge_ids: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    groups: int = 0


class ExplainResult(BaseModel):
    """Stored vs. freshly recomputed score for an edge."""

    edge: Edge
    stored: ScoreBreakdown
    current: ScoreBreakdown
    current_score: float
    min_score: float
    would_suggest: bool
