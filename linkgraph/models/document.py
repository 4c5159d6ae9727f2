"""
Document and Chunk models for long-form content.

A Document owns an ordered list of Chunks. Chunks are the retrieval units
and carry their own embeddings; documents are provenance/grouping units.
Re-capturing a document replaces its chunks wholesale.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from linkgraph.models.node import normalize_tags
from linkgraph.utils.datetime_utils import utc_now


class ChunkType(str, Enum):
    """Role of a chunk inside its document, inferred from its heading."""

    DECISION = "decision"
    CONTEXT = "context"
    CONSEQUENCE = "consequence"
    SECTION = "section"


class Chunk(BaseModel):
    """Ordered piece of a document."""

    id: str = Field(..., description="Unique chunk ID (doc_xxx_chunk_0)")
    document_id: str = Field(..., description="Parent document ID")
    chunk_index: int = Field(..., ge=0, description="Zero-based index within document")
    chunk_type: ChunkType = Field(default=ChunkType.SECTION)
    heading: str = Field(default="")
    content: str = Field(...)
    content_hash: str = Field(default="")
    offset: int = Field(default=0, ge=0, description="Character offset in document body")
    embedding: list[float] | None = None
    created_at: datetime = Field(default_factory=utc_now)


class Document(BaseModel):
    """Long-form content unit."""

    id: str = Field(..., description="Unique document ID (doc_xxx)")
    title: str
    body: str
    tags: list[str] = Field(default_factory=list)
    content_hash: str = Field(default="")
    version: int = Field(default=1, ge=1)
    metadata: dict[str, Any] = Field(default_factory=dict)
    chunks: list[Chunk] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> list[str]:
        return normalize_tags(value)


class ScoredChunk(BaseModel):
    """Chunk search hit."""

    chunk: Chunk
    score: float
