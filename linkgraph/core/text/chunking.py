"""Markdown chunking for documents.

Splits on headings, then caps chunk size on paragraph boundaries.
"""

import re
from dataclasses import dataclass

from linkgraph.models.document import ChunkType

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")

_CHUNK_TYPE_KEYWORDS: dict[ChunkType, tuple[str, ...]] = {
    ChunkType.DECISION: ("decision", "decide", "resolution", "outcome", "choice"),
    ChunkType.CONTEXT: ("context", "background", "problem", "motivation", "overview"),
    ChunkType.CONSEQUENCE: ("consequence", "impact", "result", "tradeoff", "trade-off"),
}


@dataclass
class TextChunk:
    """Represents a chunk of text with its position in the source."""

    heading: str
    text: str
    offset: int
    chunk_type: ChunkType = ChunkType.SECTION


def infer_chunk_type(heading: str) -> ChunkType:
    """Map a heading onto a chunk type by keyword."""
    lowered = heading.lower()
    for chunk_type, keywords in _CHUNK_TYPE_KEYWORDS.items():
        if any(keyword in lowered for keyword in keywords):
            return chunk_type
    return ChunkType.SECTION


class MarkdownChunker:
    """Heading-aware chunker with a size cap."""

    def __init__(self, max_chars: int = 2000, overlap: int = 0):
        if max_chars <= 0:
            raise ValueError("max_chars must be positive")
        if overlap < 0 or overlap >= max_chars:
            raise ValueError("overlap must be in [0, max_chars)")
        self.max_chars = max_chars
        self.overlap = overlap

    def chunk(self, text: str) -> list[TextChunk]:
        """Split text into ordered chunks. Empty input yields no chunks."""
        if not text or not text.strip():
            return []

        chunks: list[TextChunk] = []
        for heading, section, offset in self._sections(text):
            for piece, piece_offset in self._split_section(section, offset):
                chunks.append(
                    TextChunk(
                        heading=heading,
                        text=piece,
                        offset=piece_offset,
                        chunk_type=infer_chunk_type(heading),
                    )
                )
        return chunks

    def _sections(self, text: str):
        heading = ""
        start = 0
        position = 0
        lines = text.splitlines(keepends=True)
        for line in lines:
            match = _HEADING_RE.match(line.rstrip("\n"))
            if match:
                if text[start:position].strip():
                    yield heading, text[start:position], start
                heading = match.group(2).strip()
                # heading line lives in `heading`, not in the chunk text
                start = position + len(line)
            position += len(line)
        if text[start:].strip():
            yield heading, text[start:], start

    def _split_section(self, section: str, offset: int):
        if len(section) <= self.max_chars:
            stripped = section.strip()
            yield stripped, offset + section.find(stripped)
            return

        # Pack paragraphs until the cap; hard-split paragraphs that exceed it
        current = ""
        current_offset = offset
        cursor = 0
        for paragraph in re.split(r"(\n\s*\n)", section):
            if not paragraph:
                continue
            if len(current) + len(paragraph) <= self.max_chars:
                if not current:
                    current_offset = offset + cursor
                current += paragraph
            else:
                if current.strip():
                    yield current.strip(), current_offset
                while len(paragraph) > self.max_chars:
                    yield paragraph[: self.max_chars].strip(), offset + cursor
                    step = self.max_chars - self.overlap
                    paragraph = paragraph[step:]
                    cursor += step
                current = paragraph
                current_offset = offset + cursor
            cursor += len(paragraph)
        if current.strip():
            yield current.strip(), current_offset
