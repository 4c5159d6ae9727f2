"""
Data models for linkgraph.

Core models:
- Node, NodeChanges, ScoredNode: captured knowledge units
- Edge, EdgeState, ScoreBreakdown, EdgeEvent, EdgeFilter: relations and audit log
- Document, Chunk, ChunkType: long-form content
- TagFilter, SimilarityTerm, And, Or, Not: hybrid query AST
- CaptureResult, EditResult, ResweepResult, GraphStats, HealthReport: engine results
"""

from linkgraph.models.document import Chunk, ChunkType, Document, ScoredChunk
from linkgraph.models.edge import (
    BatchResult,
    Edge,
    EdgeEvent,
    EdgeFilter,
    EdgeState,
    ExplainResult,
    ScoreBreakdown,
)
from linkgraph.models.node import (
    LayoutPosition,
    Node,
    NodeChanges,
    NodeStatus,
    ScoredNode,
    compute_content_hash,
    normalize_tags,
)
from linkgraph.models.query import And, Not, Or, QueryNode, SimilarityTerm, TagFilter
from linkgraph.models.results import (
    CaptureResult,
    EditResult,
    GraphStats,
    HealthReport,
    ResweepResult,
)

__all__ = [
    # Node models
    "Node",
    "NodeChanges",
    "NodeStatus",
    "LayoutPosition",
    "ScoredNode",
    "compute_content_hash",
    "normalize_tags",
    # Edge models
    "Edge",
    "EdgeState",
    "EdgeEvent",
    "EdgeFilter",
    "ScoreBreakdown",
    "BatchResult",
    "ExplainResult",
    # Document models
    "Document",
    "Chunk",
    "ChunkType",
    "ScoredChunk",
    # Query AST
    "QueryNode",
    "TagFilter",
    "SimilarityTerm",
    "And",
    "Or",
    "Not",
    # Results
    "CaptureResult",
    "EditResult",
    "ResweepResult",
    "GraphStats",
    "HealthReport",
]
