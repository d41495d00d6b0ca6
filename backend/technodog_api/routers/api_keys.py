"""
API keys router — developers manage their own keys.

Endpoints (session-authenticated, owner = JWT `sub`):
  GET    /api/keys       — list keys (prefix only, never the hash)
  POST   /api/keys       — issue a key; revokes the previous active one
  DELETE /api/keys/{id}  — revoke
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from technodog_api.auth.session import SessionUser, get_session_user
from technodog_api.core.database import get_db_session
from technodog_api.core.errors import APIError
from technodog_api.schemas.api_keys import (
    APIKeyCreate,
    APIKeyCreatedOut,
    APIKeyListOut,
    APIKeyOut,
    APIKeyRevokedOut,
)
from technodog_api.services.api_keys import issue_api_key, list_api_keys, revoke_api_key

router = APIRouter(tags=["API Keys"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Owner = Annotated[SessionUser, Depends(get_session_user)]


@router.get("", response_model=APIKeyListOut, summary="List your API keys")
async def list_keys(owner: Owner, session: DbSession) -> APIKeyListOut:
    keys = await list_api_keys(session, owner.user_id)
    return APIKeyListOut(keys=[APIKeyOut.model_validate(k) for k in keys])


@router.post(
    "",
    response_model=APIKeyCreatedOut,
    status_code=status.HTTP_201_CREATED,
    summary="Issue an API key",
    description="Any active key you hold is revoked. The raw key is returned once.",
)
async def create_key(
    owner: Owner,
    session: DbSession,
    payload: Annotated[APIKeyCreate | None, Body()] = None,
) -> APIKeyCreatedOut:
    api_key, raw_key = await issue_api_key(session, owner.user_id, payload)
    return APIKeyCreatedOut(key=APIKeyOut.model_validate(api_key), api_key=raw_key)


@router.delete("/{key_id}", response_model=APIKeyRevokedOut, summary="Revoke an API key")
async def revoke_key(key_id: uuid.UUID, owner: Owner, session: DbSession) -> APIKeyRevokedOut:
    if not await revoke_api_key(session, owner.user_id, key_id):
        raise APIError.not_found("API key not found")
    return APIKeyRevokedOut()
