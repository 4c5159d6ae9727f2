"""Utility modules for linkgraph."""

from linkgraph.utils.exceptions import (
    ConfigurationError,
    DimensionMismatch,
    EditConflict,
    EmbeddingError,
    InvalidTransition,
    LinkGraphError,
    NotFoundError,
    NoUndoAvailable,
    PairAlreadyDecided,
    ProviderUnavailable,
    QueryParseError,
    StoreError,
    StoreUnavailable,
    ValidationError,
)
from linkgraph.utils.id_generator import (
    canonical_pair,
    generate_chunk_id,
    generate_document_id,
    generate_edge_id,
    generate_node_id,
)
from linkgraph.utils.logger import get_logger, setup_logging

__all__ = [
    # Logging
    "get_logger",
    "setup_logging",
    # ID Generators
    "generate_node_id",
    "generate_document_id",
    "generate_chunk_id",
    "generate_edge_id",
    "canonical_pair",
    # Exceptions
    "LinkGraphError",
    "StoreError",
    "StoreUnavailable",
    "ValidationError",
    "NotFoundError",
    "ConfigurationError",
    "EmbeddingError",
    "ProviderUnavailable",
    "DimensionMismatch",
    "EditConflict",
    "InvalidTransition",
    "NoUndoAvailable",
    "QueryParseError",
    "PairAlreadyDecided",
]
