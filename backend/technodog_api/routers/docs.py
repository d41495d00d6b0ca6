"""
Document router — GET /api/v1/docs?docId=.

Returns one document with its full text. metadata carries source_url,
license and createdAt, overlaid by whatever is stored in the row's
metadata column.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from technodog_api.auth.rate_limit import APIContext, enforce_rate_limit
from technodog_api.core.database import get_db_session
from technodog_api.core.errors import APIError
from technodog_api.models.document import Document
from technodog_api.schemas.public_api import (
    DocumentContent,
    DocumentOut,
    DocumentResponse,
)
from technodog_api.services.pagination import as_utc
from technodog_api.services.search import document_url

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Public API"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]
DocsContext = Annotated[APIContext, Depends(enforce_rate_limit("/api/v1/docs"))]

DOCUMENT_LICENSE = "TECHNO.DOG Knowledge License"


def document_out(doc: Document) -> DocumentOut:
    metadata = {
        "source_url": document_url(doc),
        "license": DOCUMENT_LICENSE,
        "createdAt": as_utc(doc.created_at).isoformat(),
        **(doc.metadata_ or {}),
    }
    return DocumentOut(
        doc_id=doc.id,
        type=doc.doc_type,
        title=doc.title,
        tags=doc.tags,
        updated_at=as_utc(doc.updated_at),
        content=DocumentContent(text=doc.content),
        metadata=metadata,
    )


@router.get(
    "/docs",
    response_model=DocumentResponse,
    summary="Get one document",
    description="Full text and metadata of a single document by id.",
)
async def get_document(
    ctx: DocsContext,
    session: DbSession,
    doc_id: str | None = Query(default=None, alias="docId"),
) -> DocumentResponse:
    if not doc_id:
        raise APIError.bad_request("Missing required parameter: docId", ctx.headers)

    try:
        doc = await session.get(Document, doc_id)
    except SQLAlchemyError as exc:
        logger.exception("Document query failed [%s]", ctx.request_id)
        raise APIError.internal(ctx.headers) from exc

    if doc is None:
        raise APIError.not_found(f"Document not found: {doc_id}", ctx.headers)

    return DocumentResponse(doc=document_out(doc), request_id=ctx.request_id)
