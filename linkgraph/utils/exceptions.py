"""
Custom exception hierarchy for linkgraph.

Provides structured error types so callers can render a specific message
for every failure kind. All exceptions inherit from LinkGraphError.
"""

from typing import Any


class LinkGraphError(Exception):
    """
    Base exception for all linkgraph errors.
    All custom exceptions should inherit from this class.
    """

    def __init__(self, message: str, context: dict | None = None):
        """
        Initialize linkgraph error.
        Args:
            message: Error message
            context: Optional context dictionary with additional error details
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class StoreError(LinkGraphError):
    """
    Base exception for store operations.
    Used for errors related to data storage operations.
    """

    pass


class StoreUnavailable(StoreError):
    """
    Storage backend failure (connection loss, disk full, locked database).
    Fatal for the current operation; the enclosing transaction is rolled back.
    """

    pass


class ValidationError(LinkGraphError):
    """
    Validation errors.
    Raised when input validation fails or data is invalid.
    """

    pass


class NotFoundError(LinkGraphError):
    """
    Resource not found errors.
    Raised when a requested resource (node, edge, document) doesn't exist.
    """

    pass


class ConfigurationError(LinkGraphError):
    """
    Configuration errors.
    Raised when configuration is invalid or missing required values.
    """

    pass


class EmbeddingError(LinkGraphError):
    """
    Embedding generation errors.
    Raised by embedder backends when a call fails.
    """

    pass


class ProviderUnavailable(EmbeddingError):
    """
    Embedding backend is down, timed out or refused the request.
    Callers degrade to tag-only scoring instead of failing.
    """

    pass


class DimensionMismatch(EmbeddingError):
    """
    Embedding dimensionality differs from the configured one.
    Fatal: embedding-dependent writes stay blocked until reconciled.
    """

    def __init__(self, expected: int, actual: int, context: dict | None = None):
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}",
            {"expected": expected, "actual": actual, **(context or {})},
        )
        self.expected = expected
        self.actual = actual


class EditConflict(LinkGraphError):
    """
    Optimistic concurrency failure on a node edit.
    Carries the current stored node so the caller can re-merge.
    """

    def __init__(self, node_id: str, expected_version: int, current: Any):
        super().__init__(
            f"Node {node_id} was modified concurrently "
            f"(expected version {expected_version}, current {current.version})",
            {
                "node_id": node_id,
                "expected_version": expected_version,
                "current_version": current.version,
            },
        )
        self.node_id = node_id
        self.expected_version = expected_version
        self.current = current


class InvalidTransition(LinkGraphError):
    """
    Edge moderation requested from a state that does not allow it.
    """

    def __init__(self, edge_id: str, current: str | None, requested: str):
        state = current if current is not None else "missing"
        super().__init__(
            f"Cannot move edge {edge_id} from {state} to {requested}",
            {"edge_id": edge_id, "current_state": current, "requested_state": requested},
        )
        self.edge_id = edge_id
        self.current_state = current
        self.requested_state = requested


class NoUndoAvailable(LinkGraphError):
    """
    There is no reversible transition for the edge, or the undo window elapsed.
    """

    pass


class QueryParseError(LinkGraphError):
    """
    Malformed hybrid query. `position` is the 0-based character offset.
    """

    def __init__(self, message: str, query: str, position: int):
        super().__init__(
            f"{message} at position {position}",
            {"query": query, "position": position},
        )
        self.query = query
        self.position = position

    def pointer(self) -> str:
        """Render the query with a caret under the failing position."""
        return f"{self.query}\n{' ' * self.position}^"


class PairAlreadyDecided(LinkGraphError):
    """
    Signal that a node pair already carries a decided edge.
    Raised by the suggestion upsert and skipped silently by the auto-linker.
    """

    def __init__(self, edge_id: str, state: str):
        super().__init__(
            f"Edge {edge_id} already decided as {state}",
            {"edge_id": edge_id, "state": state},
        )
        self.edge_id = edge_id
        self.state = state
