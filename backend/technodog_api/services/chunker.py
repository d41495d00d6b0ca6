"""
Document chunking for retrieval clients.

A document is served as chunks in one of two ways:
  • precomputed — several `documents` rows share a title and carry a
    chunk_index; each row is one chunk.
  • dynamic — a single row is split here, on sentence boundaries, into
    chunks of roughly `chunk_size` characters with a word overlap so that
    no sentence loses its context at a chunk edge.

Chunk ids are `{docId}_{index:03d}` and depend only on the document id
and position, so re-requests yield the same ids.
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from technodog_api.models.document import Document
from technodog_api.schemas.public_api import DocumentChunk
from technodog_api.services.pagination import encode_offset_cursor

DEFAULT_CHUNK_SIZE = 500
MAX_CHUNK_SIZE = 2000
DEFAULT_OVERLAP = 50
CHUNK_PAGE_SIZE = 20

# Overlap is expressed in characters; one word is counted as ~5 chars.
CHARS_PER_WORD = 5

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


def chunk_id(doc_id: str, index: int) -> str:
    return f"{doc_id}_{index:03d}"


def split_sentences(text: str) -> list[str]:
    return [s for s in _SENTENCE_BOUNDARY.split(text.strip()) if s]


def chunk_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> list[str]:
    """
    Greedily pack sentences into chunks of at most ~chunk_size chars.

    A chunk is closed when appending the next sentence would exceed
    chunk_size. The next chunk starts with the closed chunk's last
    ceil(overlap / 5) words. A single sentence longer than chunk_size
    becomes its own oversized chunk; sentences are never cut.
    """
    overlap_words = math.ceil(overlap / CHARS_PER_WORD)
    chunks: list[str] = []
    current = ""

    for sentence in split_sentences(text):
        if current and len(f"{current} {sentence}") > chunk_size:
            closed = current.strip()
            chunks.append(closed)
            tail = " ".join(closed.split(" ")[-overlap_words:]) if overlap_words else ""
            current = f"{tail} {sentence}" if tail else sentence
        else:
            current = f"{current} {sentence}" if current else sentence

    if current.strip():
        chunks.append(current.strip())
    return chunks


def dynamic_chunks(doc_id: str, doc: Document, chunk_size: int) -> list[DocumentChunk]:
    return [
        DocumentChunk(chunk_id=chunk_id(doc_id, idx), index=idx, text=text)
        for idx, text in enumerate(chunk_text(doc.content, chunk_size))
    ]


def precomputed_chunks(doc_id: str, rows: Sequence[Document]) -> list[DocumentChunk]:
    """One chunk per stored row; a missing chunk_index falls back to position."""
    chunks = []
    for position, row in enumerate(rows):
        index = row.chunk_index if row.chunk_index is not None else position
        chunks.append(DocumentChunk(chunk_id=chunk_id(doc_id, index), index=index, text=row.content))
    return chunks


@dataclass
class ChunkPage:
    chunks: list[DocumentChunk]
    next_cursor: str | None


def paginate_chunks(
    chunks: list[DocumentChunk],
    start: int,
    page_size: int = CHUNK_PAGE_SIZE,
) -> ChunkPage:
    end = start + page_size
    next_cursor = encode_offset_cursor(end) if end < len(chunks) else None
    return ChunkPage(chunks=chunks[start:end], next_cursor=next_cursor)


async def fetch_chunk_rows(session: AsyncSession, doc_id: str) -> list[Document]:
    """Rows whose id or title equals doc_id, in chunk order."""
    stmt = (
        select(Document)
        .where(or_(Document.id == doc_id, Document.title == doc_id))
        .order_by(Document.chunk_index.asc().nulls_last(), Document.id)
    )
    return list((await session.execute(stmt)).scalars().all())
