"""
FastAPI dependency for API key authentication (public /api/v1 routes).

Flow:
  1. Extract Bearer token from Authorization header
  2. Reject anything without the td_live_ prefix — no hashing, no DB
  3. Hash the token (SHA-256)
  4. Look up an api_keys row by hash WHERE status = 'active'
  5. Return ValidatedKey (user, key id, configured limits)
  6. Stamp last_used_at / total_requests in a background task

Security:
  • Generic 401 for ALL failure modes (missing, malformed, unknown, revoked)
  • Raw keys are NEVER logged
  • Hash lookup means the DB never sees the raw key
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from fastapi import BackgroundTasks, Depends, Header, status
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from technodog_api.auth.hashing import has_key_format, hash_api_key
from technodog_api.core.database import get_db_session, open_session, utcnow
from technodog_api.core.errors import UNAUTHORIZED, APIError
from technodog_api.models.api_key import KEY_STATUS_ACTIVE, APIKey

logger = logging.getLogger(__name__)

_AUTH_FAILED_MESSAGE = "Invalid or missing API key."


def auth_failed() -> APIError:
    """Same code, message and headers for every authentication failure."""
    return APIError(
        UNAUTHORIZED,
        _AUTH_FAILED_MESSAGE,
        status.HTTP_401_UNAUTHORIZED,
        headers={"WWW-Authenticate": "Bearer"},
    )


def bearer_token(authorization: str | None) -> str | None:
    """Return the token of a 'Bearer <token>' header, else None."""
    if not authorization:
        return None
    parts = authorization.split(" ", maxsplit=1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
        return None
    return parts[1]


@dataclass(frozen=True, slots=True)
class ValidatedKey:
    """Resolved caller of a public API request.

    Attributes:
        user_id:               Owner of the key.
        api_key_id:            The key used for this request.
        rate_limit_per_minute: Configured per-endpoint minute limit.
        rate_limit_per_day:    Configured all-endpoint daily limit.
    """

    user_id: uuid.UUID
    api_key_id: uuid.UUID
    rate_limit_per_minute: int
    rate_limit_per_day: int


async def lookup_active_key(session: AsyncSession, key_hash: str) -> APIKey | None:
    stmt = select(APIKey).where(
        APIKey.key_hash == key_hash,
        APIKey.status == KEY_STATUS_ACTIVE,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def validate_api_key(
    session: AsyncSession,
    credential: str | None,
) -> ValidatedKey | None:
    """
    Resolve a raw credential to a ValidatedKey, or None if it is not valid.

    Malformed credentials return before any hashing or lookup.
    """
    if not has_key_format(credential):
        return None

    api_key = await lookup_active_key(session, hash_api_key(credential))
    if api_key is None:
        return None

    return ValidatedKey(
        user_id=api_key.user_id,
        api_key_id=api_key.id,
        rate_limit_per_minute=api_key.rate_limit_per_minute,
        rate_limit_per_day=api_key.rate_limit_per_day,
    )


async def record_key_usage(api_key_id: uuid.UUID) -> None:
    """
    Stamp last_used_at and bump total_requests.

    Runs after the response is sent, on its own session. A failure
    here is logged and otherwise ignored.
    """
    try:
        async with open_session() as session:
            await session.execute(
                update(APIKey)
                .where(APIKey.id == api_key_id)
                .values(
                    last_used_at=utcnow(),
                    total_requests=APIKey.total_requests + 1,
                )
            )
            await session.commit()
    except SQLAlchemyError:
        logger.warning("Could not record usage for API key %s", api_key_id, exc_info=True)


async def require_api_key(
    background_tasks: BackgroundTasks,
    authorization: str | None = Header(default=None, alias="Authorization"),
    session: AsyncSession = Depends(get_db_session),
) -> ValidatedKey:
    """
    FastAPI dependency — resolves the Bearer API key to a ValidatedKey.

    Raises the generic 401 APIError for:
      - Missing Authorization header
      - Non-Bearer scheme
      - Token without the td_live_ prefix
      - Unknown key hash
      - Revoked key
    """
    key = await validate_api_key(session, bearer_token(authorization))
    if key is None:
        raise auth_failed()

    background_tasks.add_task(record_key_usage, key.api_key_id)
    return key
