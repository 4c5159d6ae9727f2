"""Text utilities: tokenization, hashtags, titles and markdown chunking."""

from linkgraph.core.text.chunking import MarkdownChunker, TextChunk, infer_chunk_type
from linkgraph.core.text.tokens import (
    extract_hashtags,
    pick_title,
    token_cosine,
    tokenize,
)

__all__ = [
    "MarkdownChunker",
    "TextChunk",
    "infer_chunk_type",
    "extract_hashtags",
    "pick_title",
    "token_cosine",
    "tokenize",
]
