"""
Pydantic v2 schemas for webhook management (/api/webhooks).

The secret never appears in WebhookOut; it is returned exactly once,
in WebhookCreatedOut, when the webhook is registered.
"""

from __future__ import annotations

import datetime
import uuid
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class WebhookCreate(BaseModel):
    """Request body for POST /api/webhooks."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = Field(default=None, max_length=200)
    url: str = Field(..., min_length=1, examples=["https://example.com/hooks/techno"])
    # Unknown event types are dropped, not rejected.
    events: list[str] | None = Field(default=None, examples=[["content.updated"]])


class WebhookUpdate(BaseModel):
    """Request body for PATCH /api/webhooks/{id}. Omitted fields are left as-is."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = Field(default=None, max_length=200)
    url: str | None = None
    events: list[str] | None = None
    status: Literal["active", "paused"] | None = None


class WebhookOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    url: str
    events: list[str]
    status: str
    failure_count: int
    last_error: str | None = None
    last_triggered_at: datetime.datetime | None = None
    last_success_at: datetime.datetime | None = None
    last_failure_at: datetime.datetime | None = None
    created_at: datetime.datetime


class WebhookCreatedOut(BaseModel):
    webhook: WebhookOut
    secret: str
    notice: str = "Save this secret securely. It will not be shown again."


class WebhookDeliveryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    event_id: uuid.UUID | None = None
    event_type: str
    payload: dict[str, Any]
    response_status: int | None = None
    response_body: str | None = None
    success: bool
    duration_ms: int | None = None
    created_at: datetime.datetime


class WebhookDetailOut(BaseModel):
    webhook: WebhookOut
    deliveries: list[WebhookDeliveryOut]


class WebhookListOut(BaseModel):
    webhooks: list[WebhookOut]


class WebhookEnvelope(BaseModel):
    """Body POSTed to subscriber URLs."""

    id: uuid.UUID
    type: str
    created: str
    data: dict[str, Any]


class DispatchSummaryOut(BaseModel):
    processed: int
    dispatched: int
    webhooks: int
