"""
Session-token authentication for the owner-facing routes
(/api/webhooks, /api/keys).

These routes are called by the logged-in website, not by API keys. The
auth provider issues an HS256 JWT whose `sub` claim is the user id; we
verify it with SESSION_JWT_SECRET and scope every query to that id.
The owner is never taken from the request body.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from fastapi import Header
from jose import JWTError, jwt

from technodog_api.auth.dependencies import auth_failed, bearer_token
from technodog_api.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SessionUser:
    """The logged-in user behind a session token."""

    user_id: uuid.UUID
    email: str | None = None


def decode_session_token(token: str) -> SessionUser:
    """
    Verify a session JWT and return its user.

    Raises:
        JWTError: bad signature, expired, wrong audience.
        ValueError: missing or non-UUID `sub` claim.
    """
    options = {} if settings.SESSION_JWT_AUDIENCE else {"verify_aud": False}
    claims = jwt.decode(
        token,
        settings.SESSION_JWT_SECRET,
        algorithms=[settings.SESSION_JWT_ALGORITHM],
        audience=settings.SESSION_JWT_AUDIENCE or None,
        options=options,
    )
    subject = claims.get("sub")
    if not subject:
        raise ValueError("token has no sub claim")
    return SessionUser(user_id=uuid.UUID(str(subject)), email=claims.get("email"))


async def get_session_user(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> SessionUser:
    """FastAPI dependency — resolves the Bearer session token to its user."""
    token = bearer_token(authorization)
    if token is None:
        raise auth_failed()

    if not settings.SESSION_JWT_SECRET:
        logger.error("SESSION_JWT_SECRET is not configured; rejecting session request")
        raise auth_failed()

    try:
        return decode_session_token(token)
    except (JWTError, ValueError) as exc:
        logger.info("Session token rejected: %s", type(exc).__name__)
        raise auth_failed() from exc
