"""
FastAPI dependency factory for rate limit enforcement.

    Ctx = Annotated[APIContext, Depends(enforce_rate_limit("/api/v1/search"))]

Order in request pipeline: AUTH → RATE LIMIT → ROUTER LOGIC.

Every authenticated response carries X-RateLimit-Limit / -Remaining /
-Reset and X-Request-Id so clients can self-throttle. On limit exceeded
the same headers come back with a 429 and a Retry-After.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from fastapi import Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from technodog_api.auth.dependencies import ValidatedKey, require_api_key
from technodog_api.core.database import get_db_session, utcnow
from technodog_api.core.errors import RATE_LIMITED, APIError
from technodog_api.core.request_id import get_request_id
from technodog_api.services.rate_limiter import RateLimitResult, check_rate_limit


@dataclass(frozen=True, slots=True)
class APIContext:
    """Authenticated, rate-checked request context for /api/v1 routes.

    `headers` must be attached to every response of the request,
    including errors raised by the router.
    """

    key: ValidatedKey
    request_id: str
    rate_limit: RateLimitResult
    headers: dict[str, str] = field(default_factory=dict)


def enforce_rate_limit(endpoint: str):  # type: ignore[no-untyped-def]
    """Build a dependency that rate-limits `endpoint` per API key."""

    async def dependency(
        request: Request,
        response: Response,
        key: ValidatedKey = Depends(require_api_key),
        session: AsyncSession = Depends(get_db_session),
    ) -> APIContext:
        request_id = get_request_id(request)
        result = await check_rate_limit(
            session,
            api_key_id=key.api_key_id,
            user_id=key.user_id,
            endpoint=endpoint,
            limit_per_minute=key.rate_limit_per_minute,
            limit_per_day=key.rate_limit_per_day,
        )
        headers = {**result.headers(), "X-Request-Id": request_id}
        # Picked up by the error handlers for 400s raised after this point
        request.state.rate_limit_headers = headers

        if not result.allowed:
            retry_after = max(1, math.ceil((result.reset_at - utcnow()).total_seconds()))
            raise APIError(
                RATE_LIMITED,
                "Rate limit exceeded. Please try again later.",
                status.HTTP_429_TOO_MANY_REQUESTS,
                headers={**headers, "Retry-After": str(retry_after)},
            )

        response.headers.update(headers)
        return APIContext(key=key, request_id=request_id, rate_limit=result, headers=headers)

    return dependency
