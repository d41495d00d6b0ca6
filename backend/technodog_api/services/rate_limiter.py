"""
Database-backed rate limiter service.

Enforces per-API-key usage limits with atomic counters in the api_usage
table.

Design decisions:
  • Increment-and-read in ONE statement —
      INSERT … ON CONFLICT DO UPDATE SET request_count = request_count + 1
        WHERE request_count < :limit
      RETURNING request_count
    so two concurrent requests can never both observe "limit - 1".
  • Failed requests (429) don't inflate counters: a full window returns
    no row and is left untouched. When the day window denies a request
    the minute window already admitted, that minute slot is released.
  • Time bucketing — minute = floor to current minute (per endpoint),
    day = midnight UTC (all endpoints, stored under endpoint '*').
  • No in-process counters — every instance shares the same table.
  • Storage errors fail OPEN by default (availability over strictness).
    Set RATE_LIMIT_FAIL_OPEN=false to reject instead.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import delete, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from technodog_api.core.config import settings
from technodog_api.core.database import utcnow
from technodog_api.models.api_usage import APIUsage

logger = logging.getLogger(__name__)

# Window type constants
WINDOW_MINUTE = "minute"
WINDOW_DAY = "day"

# Endpoint key for the daily, all-endpoint window
ALL_ENDPOINTS = "*"


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """Outcome of one rate limit check, surfaced as response headers."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime.datetime

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": self.reset_at.isoformat(),
        }


def _minute_bucket(now: datetime.datetime) -> datetime.datetime:
    """Floor a timestamp to the start of the current minute (UTC)."""
    return now.replace(second=0, microsecond=0)


def _day_bucket(now: datetime.datetime) -> datetime.datetime:
    """Floor a timestamp to midnight UTC of the current day."""
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def _insert_for(session: AsyncSession):  # type: ignore[no-untyped-def]
    """Pick the dialect-specific INSERT that supports ON CONFLICT."""
    if session.get_bind().dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


async def _increment(
    session: AsyncSession,
    api_key_id: uuid.UUID,
    user_id: uuid.UUID,
    endpoint: str,
    window_type: str,
    window_start: datetime.datetime,
    limit: int | None = None,
) -> int | None:
    """
    Atomically increment the counter for a window and return the new count.

    With a `limit`, an existing counter already at the limit is not
    touched and None is returned.
    """
    insert = _insert_for(session)
    stmt = (
        insert(APIUsage)
        .values(
            api_key_id=api_key_id,
            user_id=user_id,
            endpoint=endpoint,
            window_type=window_type,
            window_start=window_start,
            request_count=1,
        )
        .on_conflict_do_update(
            index_elements=["api_key_id", "endpoint", "window_type", "window_start"],
            set_={"request_count": APIUsage.request_count + 1},
            where=(APIUsage.request_count < limit) if limit is not None else None,
        )
        .returning(APIUsage.request_count)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def _release(
    session: AsyncSession,
    api_key_id: uuid.UUID,
    endpoint: str,
    window_type: str,
    window_start: datetime.datetime,
) -> None:
    """Give back one slot taken by _increment for a request that was denied."""
    await session.execute(
        update(APIUsage)
        .where(
            APIUsage.api_key_id == api_key_id,
            APIUsage.endpoint == endpoint,
            APIUsage.window_type == window_type,
            APIUsage.window_start == window_start,
            APIUsage.request_count > 0,
        )
        .values(request_count=APIUsage.request_count - 1)
    )


async def check_rate_limit(
    session: AsyncSession,
    api_key_id: uuid.UUID,
    user_id: uuid.UUID,
    endpoint: str,
    limit_per_minute: int,
    limit_per_day: int | None = None,
) -> RateLimitResult:
    """
    Count this request against the key's minute and day windows.

    Allowed iff both post-increment counts are within their limits.
    A denied request leaves both counters as they were. The minute
    window is reported in the headers unless the day window is the one
    that denied the request.
    """
    now = utcnow()
    minute_start = _minute_bucket(now)
    day_start = _day_bucket(now)
    minute_reset = minute_start + datetime.timedelta(minutes=1)

    try:
        minute_count = await _increment(
            session, api_key_id, user_id, endpoint, WINDOW_MINUTE, minute_start,
            limit_per_minute,
        )
        minute_ok = minute_count is not None and minute_count <= limit_per_minute
        day_ok = True

        if minute_ok:
            day_count = await _increment(
                session, api_key_id, user_id, ALL_ENDPOINTS, WINDOW_DAY, day_start,
                limit_per_day,
            )
            if limit_per_day is not None:
                day_ok = day_count is not None and day_count <= limit_per_day
            if not day_ok:
                if day_count is not None:
                    await _release(session, api_key_id, ALL_ENDPOINTS, WINDOW_DAY, day_start)
                await _release(session, api_key_id, endpoint, WINDOW_MINUTE, minute_start)
        elif minute_count is not None:
            # Fresh window with a zero limit
            await _release(session, api_key_id, endpoint, WINDOW_MINUTE, minute_start)

        await session.commit()  # persist counters — essential for read-only routes
    except SQLAlchemyError:
        await session.rollback()
        logger.exception(
            "Rate limit check failed for key %s on %s (fail_open=%s)",
            api_key_id, endpoint, settings.RATE_LIMIT_FAIL_OPEN,
        )
        return RateLimitResult(
            allowed=settings.RATE_LIMIT_FAIL_OPEN,
            limit=limit_per_minute,
            remaining=0,
            reset_at=minute_reset,
        )

    if not minute_ok:
        return RateLimitResult(
            allowed=False,
            limit=limit_per_minute,
            remaining=0,
            reset_at=minute_reset,
        )

    if not day_ok:
        return RateLimitResult(
            allowed=False,
            limit=limit_per_minute,
            remaining=0,
            reset_at=day_start + datetime.timedelta(days=1),
        )

    return RateLimitResult(
        allowed=True,
        limit=limit_per_minute,
        remaining=max(0, limit_per_minute - minute_count),
        reset_at=minute_reset,
    )


async def cleanup_old_usage(
    session: AsyncSession,
    older_than: datetime.timedelta = datetime.timedelta(days=2),
) -> int:
    """Delete usage windows that started before now - older_than."""
    cutoff = utcnow() - older_than
    result = await session.execute(
        delete(APIUsage).where(APIUsage.window_start < cutoff)
    )
    await session.commit()
    deleted = result.rowcount or 0
    logger.info("Deleted %d expired rate limit windows (before %s)", deleted, cutoff)
    return deleted
