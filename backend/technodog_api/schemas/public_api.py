"""
Pydantic v2 response schemas for the public /api/v1 endpoints.

Fields are snake_case in Python and camelCase on the wire
(alias_generator=to_camel). FastAPI serializes response_model by alias.
"""

from __future__ import annotations

import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Search ──────────────────────────────────────────────────
class SearchResult(_CamelModel):
    """One matching document."""

    doc_id: str
    title: str
    snippet: str
    type: str
    tags: list[str] = Field(default_factory=list)
    score: float = Field(..., ge=0, le=0.99)
    updated_at: datetime.datetime
    url: str


class SearchResponse(_CamelModel):
    query: str
    results: list[SearchResult]
    next_cursor: str | None = None
    request_id: str


# ── Chunks ──────────────────────────────────────────────────
class DocumentChunk(_CamelModel):
    """One retrieval-sized slice of a document."""

    chunk_id: str = Field(..., examples=["berghain-history_000"])
    index: int = Field(..., ge=0)
    text: str


class ChunksResponse(_CamelModel):
    doc_id: str
    chunks: list[DocumentChunk]
    next_cursor: str | None = None
    request_id: str


# ── Single document ─────────────────────────────────────────
class DocumentContent(_CamelModel):
    text: str


class DocumentOut(_CamelModel):
    doc_id: str
    type: str
    title: str
    tags: list[str] = Field(default_factory=list)
    updated_at: datetime.datetime
    content: DocumentContent
    # Free-form: source_url, license, createdAt plus the stored metadata.
    metadata: dict[str, Any] = Field(default_factory=dict)


class DocumentResponse(_CamelModel):
    doc: DocumentOut
    request_id: str


# ── Ping ────────────────────────────────────────────────────
class RateLimitInfo(_CamelModel):
    limit: int
    remaining: int
    reset_at: str


class PingResponse(_CamelModel):
    ok: bool = True
    project: str = "techno.dog"
    timestamp: datetime.datetime
    version: str = "v1"
    rate_limit: RateLimitInfo
