"""
Search router — GET /api/v1/search.

Pipeline: AUTH → RATE LIMIT → parameter checks → query.

Query parameters:
  q              required, case-insensitive substring of document content
  limit          page size, default 10, clamped to [1, 50]
  tags, types    comma-separated filters applied to the fetched page
  cursor         nextCursor from the previous page
  updated_after  ISO-8601; only documents updated at or after it
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from technodog_api.auth.rate_limit import APIContext, enforce_rate_limit
from technodog_api.core.database import get_db_session
from technodog_api.core.errors import APIError
from technodog_api.schemas.public_api import SearchResponse
from technodog_api.services.pagination import (
    InvalidCursor,
    decode_time_cursor,
    parse_timestamp,
)
from technodog_api.services.search import search_documents

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Public API"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]
SearchContext = Annotated[APIContext, Depends(enforce_rate_limit("/api/v1/search"))]

DEFAULT_LIMIT = 10
MAX_LIMIT = 50


def split_csv(value: str | None) -> list[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


@router.get(
    "/search",
    response_model=SearchResponse,
    summary="Search documents",
    description=(
        "Case-insensitive substring search over document content, newest "
        "first. Paginate by passing nextCursor back as `cursor`."
    ),
)
async def search(
    ctx: SearchContext,
    session: DbSession,
    q: str | None = Query(default=None),
    limit: int | None = Query(default=None),
    tags: str | None = Query(default=None),
    types: str | None = Query(default=None),
    cursor: str | None = Query(default=None),
    updated_after: str | None = Query(default=None),
) -> SearchResponse:
    # ── 1. Validate parameters ──────────────────────────────
    if not q:
        raise APIError.bad_request("Missing required query parameter: q", ctx.headers)

    page_size = max(1, min(limit if limit is not None else DEFAULT_LIMIT, MAX_LIMIT))

    before = None
    if cursor:
        try:
            before = decode_time_cursor(cursor)
        except InvalidCursor as exc:
            raise APIError.bad_request(str(exc), ctx.headers) from exc

    after = None
    if updated_after:
        try:
            after = parse_timestamp(updated_after)
        except ValueError as exc:
            raise APIError.bad_request(
                "Invalid updated_after: expected an ISO-8601 timestamp", ctx.headers,
            ) from exc

    logger.info("API search: q=%r limit=%d key=%s", q, page_size, ctx.key.api_key_id)

    # ── 2. Query ────────────────────────────────────────────
    try:
        page = await search_documents(
            session,
            q,
            limit=page_size,
            tags=split_csv(tags),
            types=split_csv(types),
            before=before,
            updated_after=after,
        )
    except SQLAlchemyError as exc:
        logger.exception("Search query failed [%s]", ctx.request_id)
        raise APIError.internal(ctx.headers) from exc

    return SearchResponse(
        query=q,
        results=page.results,
        next_cursor=page.next_cursor,
        request_id=ctx.request_id,
    )
