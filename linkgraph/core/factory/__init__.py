"""
Factory modules for creating linkgraph components.

Provides modular factories for the Embedder and the Graph Store.
"""

from linkgraph.core.factory.embedder_factory import EmbedderFactory
from linkgraph.core.factory.graph_factory import GraphStoreFactory

__all__ = [
    "EmbedderFactory",
    "GraphStoreFactory",
]
