"""
Hybrid query evaluator.

Tag predicates filter; similarity terms rank. A node passes when the
boolean expression holds with every similarity term read as true, and is
scored by the mean of its per-term similarities. A phrase repeated in the
query counts once, both in the mean and in `term_scores`. Each term uses
cosine against the phrase embedding when both vectors are available, and
the lexical token cosine otherwise.
"""

from collections import Counter

from linkgraph.config import QueryConfig
from linkgraph.core.embeddings.client import EmbeddingClient
from linkgraph.core.graph_store.base import GraphStore
from linkgraph.core.linking.scoring import compute_batch_similarity
from linkgraph.core.query.parser import QueryParser
from linkgraph.core.text.tokens import token_cosine, tokenize
from linkgraph.models.node import Node, NodeStatus, ScoredNode
from linkgraph.models.query import (
    And,
    Not,
    Or,
    QueryNode,
    SimilarityTerm,
    TagFilter,
    similarity_terms,
)
from linkgraph.utils.exceptions import EmbeddingError
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)

SCAN_PAGE_SIZE = 500


def matches(node: QueryNode, tags: set[str]) -> bool:
    """Evaluate the boolean part of a query against a tag set."""
    if isinstance(node, TagFilter):
        return node.tag in tags
    if isinstance(node, SimilarityTerm):
        return True
    if isinstance(node, Not):
        return not matches(node.operand, tags)
    if isinstance(node, And):
        return all(matches(operand, tags) for operand in node.operands)
    if isinstance(node, Or):
        return any(matches(operand, tags) for operand in node.operands)
    raise TypeError(f"Unknown query node: {type(node).__name__}")


class QueryEvaluator:
    """Runs parsed queries against the store."""

    def __init__(
        self,
        store: GraphStore,
        embedding_client: EmbeddingClient | None = None,
        config: QueryConfig | None = None,
    ):
        """
        Initialize query evaluator.

        Args:
            store: Graph store (read-only use)
            embedding_client: Embeds similarity phrases; None means lexical only
            config: Result limits and query length cap
        """
        self.store = store
        self.embedding_client = embedding_client
        self.config = config or QueryConfig()
        self.parser = QueryParser(max_length=self.config.max_query_length)

    async def search(self, query: str | QueryNode, limit: int | None = None) -> list[ScoredNode]:
        """
        Evaluate a hybrid query.

        Args:
            query: Query string or an already-parsed AST
            limit: Maximum results (config default when None)

        Returns:
            Matching active nodes, best score first, node id breaking ties

        Raises:
            QueryParseError: Malformed query string
        """
        ast = self.parser.parse(query) if isinstance(query, str) else query
        limit = self.config.default_limit if limit is None else limit
        terms = similarity_terms(ast)

        # embeddings are computed before any store access
        phrase_vectors = await self._embed_terms(terms)
        phrase_tokens = {term.phrase: tokenize(term.phrase) for term in terms}

        hits: list[ScoredNode] = []
        async for page in self._active_pages():
            passing = [node for node in page if matches(ast, set(node.tags))]
            if not passing:
                continue
            hits.extend(self._score_page(passing, terms, phrase_vectors, phrase_tokens))

        hits.sort(key=lambda hit: (-hit.score, hit.node.id))
        logger.debug(
            "Query evaluated",
            extra={"query": str(ast), "hits": len(hits), "terms": len(terms), "limit": limit},
        )
        return hits[:limit] if limit > 0 else []

    async def _active_pages(self):
        after_id = None
        while True:
            page = await self.store.reader.list_nodes(
                status=NodeStatus.ACTIVE, after_id=after_id, limit=SCAN_PAGE_SIZE
            )
            if not page:
                return
            yield page
            if len(page) < SCAN_PAGE_SIZE:
                return
            after_id = page[-1].id

    async def _embed_terms(self, terms: list[SimilarityTerm]) -> dict[str, list[float]]:
        if not terms or self.embedding_client is None:
            return {}
        phrases = [term.phrase for term in terms]
        try:
            vectors = await self.embedding_client.embed_many(phrases)
        except EmbeddingError as e:
            logger.warning(
                "Query embedding unavailable, using lexical similarity",
                extra={"operation": "search", "error": e.message, "error_type": type(e).__name__},
            )
            return {}
        return dict(zip(phrases, vectors))

    def _score_page(
        self,
        nodes: list[Node],
        terms: list[SimilarityTerm],
        phrase_vectors: dict[str, list[float]],
        phrase_tokens: dict[str, Counter],
    ) -> list[ScoredNode]:
        if not terms:
            return [ScoredNode(node=node, score=1.0) for node in nodes]

        per_term: dict[str, dict[str, float]] = {}
        node_tokens: dict[str, Counter] = {}
        for term in terms:
            scores: dict[str, float] = {}
            vector = phrase_vectors.get(term.phrase)
            if vector is not None:
                comparable = [
                    node
                    for node in nodes
                    if node.has_embedding and len(node.embedding) == len(vector)
                ]
                similarities = compute_batch_similarity(
                    vector, [node.embedding for node in comparable]
                )
                scores.update({node.id: sim for node, sim in zip(comparable, similarities)})

            for node in nodes:
                if node.id in scores:
                    continue
                if node.id not in node_tokens:
                    node_tokens[node.id] = tokenize(node.embedding_text)
                scores[node.id] = token_cosine(phrase_tokens[term.phrase], node_tokens[node.id])
            per_term[term.phrase] = scores

        hits = []
        for node in nodes:
            term_scores = {phrase: round(scores[node.id], 6) for phrase, scores in per_term.items()}
            score = sum(term_scores.values()) / len(term_scores)
            hits.append(ScoredNode(node=node, score=round(score, 6), term_scores=term_scores))
        return hits
