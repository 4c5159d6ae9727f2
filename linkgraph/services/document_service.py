"""
Document Service - long-form capture and chunk retrieval.

A document is split into heading-based chunks, each embedded on its own.
Re-capturing a document replaces its chunks wholesale.
"""

from linkgraph.config import DocumentConfig
from linkgraph.core.embeddings.client import EmbeddingClient
from linkgraph.core.graph_store.base import GraphStore
from linkgraph.core.linking.scoring import compute_batch_similarity
from linkgraph.core.text.chunking import MarkdownChunker
from linkgraph.core.text.tokens import extract_hashtags, pick_title, token_cosine, tokenize
from linkgraph.models.document import Chunk, Document, ScoredChunk
from linkgraph.models.node import compute_content_hash, normalize_tags
from linkgraph.utils.datetime_utils import utc_now
from linkgraph.utils.exceptions import NotFoundError, ProviderUnavailable, ValidationError
from linkgraph.utils.id_generator import generate_chunk_id, generate_document_id
from linkgraph.utils.logger import get_logger

logger = get_logger(__name__)


class DocumentService:
    """Captures documents as ordered, individually embedded chunks."""

    def __init__(
        self,
        store: GraphStore,
        embedding_client: EmbeddingClient | None,
        config: DocumentConfig | None = None,
    ):
        self.store = store
        self.embedding_client = embedding_client
        self.config = config or DocumentConfig()
        self.chunker = MarkdownChunker(
            max_chars=self.config.max_chunk_chars, overlap=self.config.chunk_overlap
        )

    async def capture(
        self,
        title: str | None,
        body: str,
        tags: list[str] | None = None,
        document_id: str | None = None,
        metadata: dict | None = None,
    ) -> Document:
        """
        Capture or re-capture a document.

        Args:
            title: Title (defaults to the first body line)
            body: Markdown body
            tags: Tags; `#hashtags` in the body are added
            document_id: Existing document to replace, or None for a new one
            metadata: Free-form provenance data

        Returns:
            Stored document with its chunks

        Raises:
            ValidationError: Empty body
        """
        if not body or not body.strip():
            raise ValidationError("Document body cannot be empty")

        title = pick_title(body, title)
        pieces = self.chunker.chunk(body)
        embeddings, degraded_reason = await self._embed_pieces([piece.text for piece in pieces])

        now = utc_now()
        document_id = document_id or generate_document_id()
        chunks = [
            Chunk(
                id=generate_chunk_id(document_id, index),
                document_id=document_id,
                chunk_index=index,
                chunk_type=piece.chunk_type,
                heading=piece.heading,
                content=piece.text,
                content_hash=compute_content_hash(piece.heading, piece.text),
                offset=piece.offset,
                embedding=embeddings[index] if embeddings else None,
                created_at=now,
            )
            for index, piece in enumerate(pieces)
        ]

        async with self.store.transaction() as session:
            existing = await session.get_document(document_id)
            document = Document(
                id=document_id,
                title=title,
                body=body,
                tags=normalize_tags(list(tags or []) + extract_hashtags(body)),
                content_hash=compute_content_hash(title, body),
                version=existing.version + 1 if existing else 1,
                metadata=metadata if metadata is not None else (existing.metadata if existing else {}),
                chunks=chunks,
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
            await session.upsert_document(document)
            await session.replace_chunks(document_id, chunks)

        logger.info(
            f"Document captured: {document_id}",
            extra={
                "document_id": document_id,
                "chunks": len(chunks),
                "version": document.version,
                "degraded": degraded_reason,
            },
        )
        return document

    async def get(self, document_id: str) -> Document:
        document = await self.store.reader.get_document(document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found", {"document_id": document_id})
        return document

    async def search_chunks(self, query: str, limit: int = 10) -> list[ScoredChunk]:
        """
        Rank chunks by similarity to a free-text query.

        Uses embeddings where both sides have one, lexical similarity otherwise.
        """
        if not query or not query.strip():
            raise ValidationError("Query cannot be empty")

        vector = None
        if self.embedding_client is not None:
            try:
                vector = await self.embedding_client.embed(query)
            except ProviderUnavailable as e:
                logger.warning(
                    "Chunk search falling back to lexical similarity",
                    extra={"operation": "search_chunks", "error": e.message},
                )

        chunks = await self.store.reader.list_chunks()
        scores: dict[str, float] = {}
        if vector is not None:
            comparable = [
                chunk for chunk in chunks if chunk.embedding and len(chunk.embedding) == len(vector)
            ]
            similarities = compute_batch_similarity(vector, [chunk.embedding for chunk in comparable])
            scores = {chunk.id: sim for chunk, sim in zip(comparable, similarities)}

        query_tokens = tokenize(query)
        hits = []
        for chunk in chunks:
            score = scores.get(chunk.id)
            if score is None:
                score = token_cosine(query_tokens, tokenize(f"{chunk.heading}\n{chunk.content}"))
            hits.append(ScoredChunk(chunk=chunk, score=round(score, 6)))

        hits.sort(key=lambda hit: (-hit.score, hit.chunk.document_id, hit.chunk.chunk_index))
        return hits[:limit]

    async def _embed_pieces(self, texts: list[str]) -> tuple[list[list[float]] | None, str | None]:
        if not texts or self.embedding_client is None:
            return None, None
        try:
            return await self.embedding_client.embed_many(texts), None
        except ProviderUnavailable as e:
            logger.warning(
                "Document chunks stored without embeddings",
                extra={"operation": "capture_document", "error": e.message},
            )
            return None, e.message
