"""
Document search service.

Matching is a case-insensitive substring test on document content,
newest first, with time-based cursor pagination.

Query plan:
  SELECT * FROM documents
  WHERE content ILIKE '%' || :q || '%'
    [AND (updated_at, id) < (:cursor_updated_at, :cursor_id)]
    [AND updated_at >= :updated_after]
  ORDER BY updated_at DESC, id DESC
  LIMIT :limit + 1

The extra row only tells us whether another page exists. Tag and type
filters run in Python on the fetched page, so a filtered page may hold
fewer than `limit` results while nextCursor is still set.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from technodog_api.core.config import settings
from technodog_api.models.document import Document
from technodog_api.schemas.public_api import SearchResult
from technodog_api.services.pagination import TimeCursor, as_utc, encode_time_cursor

SNIPPET_BEFORE = 50
SNIPPET_AFTER = 100
SNIPPET_FALLBACK = 150


def make_snippet(content: str, query: str) -> str:
    """
    Excerpt around the first case-insensitive match of `query`.

    Up to 50 chars before and 100 after the match, with "..." marking a
    cut at either end. Without a match: the first 150 chars.
    """
    idx = content.lower().find(query.lower())
    if idx < 0:
        head = content[:SNIPPET_FALLBACK].strip()
        return head + ("..." if len(content) > SNIPPET_FALLBACK else "")

    start = max(0, idx - SNIPPET_BEFORE)
    end = min(len(content), idx + len(query) + SNIPPET_AFTER)
    snippet = content[start:end].strip()
    if start > 0:
        snippet = "..." + snippet
    if end < len(content):
        snippet = snippet + "..."
    return snippet


def relevance_score(title: str, content: str, query: str) -> float:
    """0.2 base, +0.3 title match, +0.5 content match; capped at 0.99."""
    needle = query.lower()
    score = 0.2
    if needle in title.lower():
        score += 0.3
    if needle in content.lower():
        score += 0.5
    return round(min(0.99, score), 2)


def document_url(doc: Document) -> str:
    return doc.source or f"{settings.PUBLIC_BASE_URL.rstrip('/')}/docs/{doc.id}"


def _passes_filters(doc: Document, tags: list[str], types: list[str]) -> bool:
    if tags and not set(tags).intersection(doc.tags):
        return False
    if types and doc.doc_type not in types:
        return False
    return True


def _after_cursor(cursor: TimeCursor):  # type: ignore[no-untyped-def]
    """Rows that sort after the cursor under updated_at DESC, id DESC."""
    if cursor.doc_id is None:
        return Document.updated_at < cursor.updated_at
    return or_(
        Document.updated_at < cursor.updated_at,
        and_(Document.updated_at == cursor.updated_at, Document.id < cursor.doc_id),
    )


@dataclass
class SearchPage:
    results: list[SearchResult]
    next_cursor: str | None


async def search_documents(
    session: AsyncSession,
    query: str,
    *,
    limit: int,
    tags: list[str] | None = None,
    types: list[str] | None = None,
    before: TimeCursor | None = None,
    updated_after: datetime.datetime | None = None,
) -> SearchPage:
    """Return one page of documents whose content contains `query`."""
    stmt = (
        select(Document)
        .where(Document.content.icontains(query, autoescape=True))
        .order_by(Document.updated_at.desc(), Document.id.desc())
        .limit(limit + 1)
    )
    if before is not None:
        stmt = stmt.where(_after_cursor(before))
    if updated_after is not None:
        stmt = stmt.where(Document.updated_at >= updated_after)

    docs = list((await session.execute(stmt)).scalars().all())

    has_more = len(docs) > limit
    page = docs[:limit]
    next_cursor = encode_time_cursor(page[-1].updated_at, page[-1].id) if has_more else None

    results = [
        SearchResult(
            doc_id=doc.id,
            title=doc.title,
            snippet=make_snippet(doc.content, query),
            type=doc.doc_type,
            tags=doc.tags,
            score=relevance_score(doc.title, doc.content, query),
            updated_at=as_utc(doc.updated_at),
            url=document_url(doc),
        )
        for doc in page
        if _passes_filters(doc, tags or [], types or [])
    ]
    return SearchPage(results=results, next_cursor=next_cursor)
