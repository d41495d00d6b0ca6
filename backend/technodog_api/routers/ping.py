"""
Ping router — GET /api/v1/ping.

Lets a developer check a key end to end: it goes through the same auth
and rate limiting as every other public endpoint and echoes the quota.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from technodog_api.auth.rate_limit import APIContext, enforce_rate_limit
from technodog_api.core.database import utcnow
from technodog_api.schemas.public_api import PingResponse, RateLimitInfo

router = APIRouter(tags=["Public API"])

PingContext = Annotated[APIContext, Depends(enforce_rate_limit("/api/v1/ping"))]


@router.get("/ping", response_model=PingResponse, summary="Check an API key")
async def ping(ctx: PingContext) -> PingResponse:
    return PingResponse(
        timestamp=utcnow(),
        rate_limit=RateLimitInfo(
            limit=ctx.rate_limit.limit,
            remaining=ctx.rate_limit.remaining,
            reset_at=ctx.rate_limit.reset_at.isoformat(),
        ),
    )
