"""
Node model: the atomic unit of captured knowledge.
"""

import hashlib
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from linkgraph.utils.datetime_utils import utc_now


class NodeStatus(str, Enum):
    """Node lifecycle status. Deleted nodes are tombstones until purged."""

    ACTIVE = "active"
    DELETED = "deleted"


class LayoutPosition(BaseModel):
    """UI-only 2D coordinate. Never used for scoring."""

    x: float
    y: float


def normalize_tags(tags: Any) -> list[str]:
    """Lower-case, strip, de-duplicate and sort a tag collection."""
    if not tags:
        return []
    cleaned = {str(tag).strip().lower().lstrip("#") for tag in tags}
    return sorted(tag for tag in cleaned if tag)


class Node(BaseModel):
    """
    Captured knowledge unit.

    Features:
    - Stable, content-independent id
    - Monotonic `version` for optimistic concurrency
    - `content_hash` tracks title/body so stale embeddings are detectable
    - Tombstone deletion (`status`), explicit purge removes it for good
    """

    id: str = Field(..., description="Unique node ID (node_xxx)")
    title: str = Field(..., description="Node title")
    body: str = Field(default="", description="Node body text")
    tags: list[str] = Field(default_factory=list, description="Normalized tag set")
    content_hash: str = Field(default="", description="SHA256 of title and body")
    embedding: list[float] | None = Field(default=None, description="Vector embedding")
    version: int = Field(default=1, ge=1, description="Optimistic concurrency version")
    status: NodeStatus = Field(default=NodeStatus.ACTIVE, description="Lifecycle status")
    author_id: str | None = Field(default=None, description="Optional author")
    layout_position: LayoutPosition | None = Field(default=None, description="UI-only position")
    created_at: datetime = Field(default_factory=utc_now, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=utc_now, description="Last update timestamp")
    deleted_at: datetime | None = Field(default=None, description="Tombstone timestamp")

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> list[str]:
        return normalize_tags(value)

    @property
    def is_active(self) -> bool:
        return self.status == NodeStatus.ACTIVE

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)

    @property
    def embedding_text(self) -> str:
        """Text sent to the embedding provider."""
        return f"{self.title}\n{self.body}".strip()


class NodeChanges(BaseModel):
    """Partial update for `edit_node`. Unset fields are left untouched."""

    title: str | None = None
    body: str | None = None
    tags: list[str] | None = None

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> list[str] | None:
        if value is None:
            return None
        return normalize_tags(value)

    def is_empty(self) -> bool:
        return self.title is None and self.body is None and self.tags is None


class ScoredNode(BaseModel):
    """Search hit: node plus its combined similarity score."""

    node: Node
    score: float
    term_scores: dict[str, float] = Field(default_factory=dict)


def compute_content_hash(title: str, body: str) -> str:
    """
    Compute SHA256 hash of node content.

    Whitespace at the edges is ignored so trivial edits don't count as
    material changes.

    Returns:
        Hash string in format "sha256:hexdigest"
    """
    normalized = f"{title.strip()}\n{body.strip()}"
    digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()
    return f"sha256:{digest}"
