"""
Pydantic v2 schemas for API key management (/api/keys).

key_hash is never part of any response. The raw key appears only in
APIKeyCreatedOut, once.
"""

from __future__ import annotations

import datetime
import uuid

from pydantic import BaseModel, ConfigDict, Field


class APIKeyCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    scopes: list[str] | None = Field(default=None, examples=[["read:public"]])


class APIKeyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str | None = None
    prefix: str
    status: str
    scopes: list[str]
    rate_limit_per_minute: int
    rate_limit_per_day: int
    total_requests: int
    last_used_at: datetime.datetime | None = None
    created_at: datetime.datetime


class APIKeyCreatedOut(BaseModel):
    key: APIKeyOut
    api_key: str = Field(..., description="Raw key. Shown once, never stored.")
    notice: str = "Copy this key now. It will not be shown again."


class APIKeyListOut(BaseModel):
    keys: list[APIKeyOut]


class APIKeyRevokedOut(BaseModel):
    success: bool = True
    message: str = "API key revoked"
