"""Auto-linking: hybrid scoring and suggestion generation."""

from linkgraph.core.linking.auto_linker import AutoLinker, LinkCandidate, LinkResult
from linkgraph.core.linking.scoring import (
    HybridScorer,
    compute_batch_similarity,
    compute_similarity,
    content_signature,
    jaccard,
    recency_bonus,
)

__all__ = [
    "AutoLinker",
    "LinkCandidate",
    "LinkResult",
    "HybridScorer",
    "compute_similarity",
    "compute_batch_similarity",
    "content_signature",
    "jaccard",
    "recency_bonus",
]
