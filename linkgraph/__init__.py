"""
linkgraph - a personal knowledge graph that links itself.

Nodes are embedded on capture, related nodes are proposed as suggested
edges, and a human accepts or rejects each suggestion.
"""

from linkgraph.config import Config
from linkgraph.services.graph_engine import KnowledgeGraphEngine

__version__ = "0.1.0"

__all__ = ["Config", "KnowledgeGraphEngine", "__version__"]
