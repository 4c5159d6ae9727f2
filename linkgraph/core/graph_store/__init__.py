"""
Graph store implementations for linkgraph.

Provides abstract base and concrete implementations for graph storage.

Available backends:
- SQLiteGraphStore: Local, transactional store (aiosqlite, WAL)
"""

from linkgraph.core.graph_store.base import GraphSession, GraphStore
from linkgraph.core.graph_store.sqlite_store import SQLiteGraphSession, SQLiteGraphStore

__all__ = [
    "GraphSession",
    "GraphStore",
    "SQLiteGraphSession",
    "SQLiteGraphStore",
]
