"""
Factory for creating graph store backends.
"""

from linkgraph.config import StoreConfig
from linkgraph.core.graph_store.base import GraphStore
from linkgraph.core.graph_store.sqlite_store import SQLiteGraphStore


class GraphStoreFactory:
    """Factory for creating graph store backends from configuration."""

    @staticmethod
    def create(config: StoreConfig) -> GraphStore:
        """
        Create graph store from configuration.

        Args:
            config: Store configuration

        Returns:
            Graph store instance (not yet initialized)
        """
        return SQLiteGraphStore(
            db_path=config.db_path,
            busy_timeout_ms=config.busy_timeout_ms,
        )
