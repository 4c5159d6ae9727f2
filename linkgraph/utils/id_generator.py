"""
ID generation utilities for linkgraph.

Provides consistent ID generation for all entity types:
- Nodes: node_xxx
- Documents: doc_xxx
- Chunks: doc_xxx_chunk_N
- Edges: <min node id>::<max node id> (content-independent, pair-derived)
"""

from uuid import uuid4


def generate_node_id() -> str:
    """
    Generate unique Node ID.

    Returns:
        ID in format "node_xxx" where xxx is 12 hex characters
    """
    return f"node_{uuid4().hex[:12]}"


def generate_document_id() -> str:
    """
    Generate unique Document ID.

    Returns:
        ID in format "doc_xxx" where xxx is 12 hex characters
    """
    return f"doc_{uuid4().hex[:12]}"


def generate_chunk_id(document_id: str, chunk_index: int) -> str:
    """
    Generate Chunk ID based on parent document.

    Args:
        document_id: Parent document ID
        chunk_index: Zero-based chunk index

    Returns:
        ID in format "doc_xxx_chunk_N"
    """
    return f"{document_id}_chunk_{chunk_index}"


def canonical_pair(a: str, b: str) -> tuple[str, str]:
    """Order a node pair so the smaller id comes first."""
    return (a, b) if a < b else (b, a)


def generate_edge_id(a: str, b: str) -> str:
    """
    Derive the Edge ID for an unordered node pair.

    Args:
        a: One node ID
        b: The other node ID

    Returns:
        ID in format "<min>::<max>"
    """
    source, target = canonical_pair(a, b)
    return f"{source}::{target}"
