"""
Chunks router — GET /api/v1/docs/chunks?docId=&chunkSize=&cursor=.

Pipeline: AUTH → RATE LIMIT → parameter checks → load rows → chunk → page.

More than one stored row for docId means the document is stored
pre-split and each row is served as-is. A single row is split on
sentence boundaries into chunks of about chunkSize characters.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from technodog_api.auth.rate_limit import APIContext, enforce_rate_limit
from technodog_api.core.database import get_db_session
from technodog_api.core.errors import APIError
from technodog_api.schemas.public_api import ChunksResponse
from technodog_api.services.chunker import (
    DEFAULT_CHUNK_SIZE,
    MAX_CHUNK_SIZE,
    dynamic_chunks,
    fetch_chunk_rows,
    paginate_chunks,
    precomputed_chunks,
)
from technodog_api.services.pagination import InvalidCursor, decode_offset_cursor

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Public API"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]
ChunksContext = Annotated[APIContext, Depends(enforce_rate_limit("/api/v1/chunks"))]


@router.get(
    "/docs/chunks",
    response_model=ChunksResponse,
    summary="Get a document as chunks",
    description=(
        "Returns precomputed chunks when the document is stored pre-split, "
        "otherwise splits it on sentence boundaries. 20 chunks per page."
    ),
)
async def get_chunks(
    ctx: ChunksContext,
    session: DbSession,
    doc_id: str | None = Query(default=None, alias="docId"),
    chunk_size: int | None = Query(default=None, alias="chunkSize"),
    cursor: str | None = Query(default=None),
) -> ChunksResponse:
    # ── 1. Validate parameters ──────────────────────────────
    if not doc_id:
        raise APIError.bad_request("Missing required parameter: docId", ctx.headers)

    size = max(1, min(chunk_size if chunk_size is not None else DEFAULT_CHUNK_SIZE, MAX_CHUNK_SIZE))

    start = 0
    if cursor:
        try:
            start = decode_offset_cursor(cursor)
        except InvalidCursor as exc:
            raise APIError.bad_request(str(exc), ctx.headers) from exc

    logger.info("API chunks: docId=%r chunkSize=%d key=%s", doc_id, size, ctx.key.api_key_id)

    # ── 2. Load rows ────────────────────────────────────────
    try:
        rows = await fetch_chunk_rows(session, doc_id)
    except SQLAlchemyError as exc:
        logger.exception("Chunk query failed [%s]", ctx.request_id)
        raise APIError.internal(ctx.headers) from exc

    if not rows:
        raise APIError.not_found(f"Document not found: {doc_id}", ctx.headers)

    # ── 3. Chunk and page ───────────────────────────────────
    if len(rows) > 1:
        chunks = precomputed_chunks(doc_id, rows)
    else:
        chunks = dynamic_chunks(doc_id, rows[0], size)

    page = paginate_chunks(chunks, start)
    return ChunksResponse(
        doc_id=doc_id,
        chunks=page.chunks,
        next_cursor=page.next_cursor,
        request_id=ctx.request_id,
    )
