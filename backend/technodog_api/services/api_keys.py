"""
API key lifecycle: issue, list, revoke.

One active key per user: issuing a new key revokes the previous ones in
the same transaction. Revocation is a status change, never a delete, so
usage history keeps its foreign key.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from technodog_api.auth.hashing import generate_api_key
from technodog_api.models.api_key import KEY_STATUS_ACTIVE, KEY_STATUS_REVOKED, APIKey
from technodog_api.schemas.api_keys import APIKeyCreate

logger = logging.getLogger(__name__)

DEFAULT_KEY_NAME = "Default API Key"
DEFAULT_SCOPES = ["read:public"]


async def issue_api_key(
    session: AsyncSession, user_id: uuid.UUID, data: APIKeyCreate | None = None,
) -> tuple[APIKey, str]:
    """Revoke the user's active keys and create a new one. Returns (row, raw_key)."""
    data = data or APIKeyCreate()

    await session.execute(
        update(APIKey)
        .where(APIKey.user_id == user_id, APIKey.status == KEY_STATUS_ACTIVE)
        .values(status=KEY_STATUS_REVOKED)
    )

    raw_key, display_prefix, key_hash = generate_api_key()
    api_key = APIKey(
        user_id=user_id,
        name=data.name or DEFAULT_KEY_NAME,
        description=data.description,
        prefix=display_prefix,
        key_hash=key_hash,
        status=KEY_STATUS_ACTIVE,
        scopes=data.scopes or list(DEFAULT_SCOPES),
    )
    session.add(api_key)
    await session.commit()
    await session.refresh(api_key)

    # Prefix only: the raw key must never reach the logs.
    logger.info("API key created: %s for user %s", display_prefix, user_id)
    return api_key, raw_key


async def list_api_keys(session: AsyncSession, user_id: uuid.UUID) -> list[APIKey]:
    stmt = (
        select(APIKey)
        .where(APIKey.user_id == user_id)
        .order_by(APIKey.created_at.desc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def revoke_api_key(
    session: AsyncSession, user_id: uuid.UUID, key_id: uuid.UUID,
) -> bool:
    """Mark the key revoked. False if the user owns no such key."""
    stmt = select(APIKey).where(APIKey.id == key_id, APIKey.user_id == user_id)
    api_key = (await session.execute(stmt)).scalar_one_or_none()
    if api_key is None:
        return False

    api_key.status = KEY_STATUS_REVOKED
    await session.commit()
    logger.info("API key revoked: %s", api_key.prefix)
    return True
