"""
Services for linkgraph.

High-level entry points:
- KnowledgeGraphEngine: Unified interface for all graph operations
- DocumentService: Long-form documents and chunk retrieval
"""

from linkgraph.services.document_service import DocumentService
from linkgraph.services.graph_engine import KnowledgeGraphEngine

__all__ = [
    "KnowledgeGraphEngine",
    "DocumentService",
]
