"""
Webhooks router — owner-scoped webhook management plus the dispatch trigger.

Endpoints (session-authenticated, owner = JWT `sub`):
  GET    /api/webhooks           — list the caller's webhooks
  POST   /api/webhooks           — register; returns the secret ONCE
  GET    /api/webhooks/{id}      — one webhook + its last 10 deliveries
  PATCH  /api/webhooks/{id}      — update name/url/events/status
  DELETE /api/webhooks/{id}      — delete with its delivery log

Operational:
  POST   /api/webhooks/dispatch  — run one dispatcher batch (cron target),
                                   guarded by X-Dispatch-Token when
                                   DISPATCH_TOKEN is configured
"""

import hmac
import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Header, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from technodog_api.auth.dependencies import auth_failed
from technodog_api.auth.session import SessionUser, get_session_user
from technodog_api.core.config import settings
from technodog_api.core.database import get_db_session
from technodog_api.core.errors import APIError
from technodog_api.models.webhook import Webhook
from technodog_api.schemas.webhooks import (
    DispatchSummaryOut,
    WebhookCreate,
    WebhookCreatedOut,
    WebhookDeliveryOut,
    WebhookDetailOut,
    WebhookListOut,
    WebhookOut,
    WebhookUpdate,
)
from technodog_api.services import webhook_registry
from technodog_api.services.webhook_dispatcher import dispatch_pending_events

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Webhooks"])

DbSession = Annotated[AsyncSession, Depends(get_db_session)]
Owner = Annotated[SessionUser, Depends(get_session_user)]


async def _owned_webhook(session: AsyncSession, owner: SessionUser, webhook_id: uuid.UUID) -> Webhook:
    webhook = await webhook_registry.get_webhook(session, owner.user_id, webhook_id)
    if webhook is None:
        raise APIError.not_found("Webhook not found")
    return webhook


async def require_dispatch_token(
    x_dispatch_token: str | None = Header(default=None, alias="X-Dispatch-Token"),
) -> None:
    if not settings.DISPATCH_TOKEN:
        return
    if not x_dispatch_token or not hmac.compare_digest(x_dispatch_token, settings.DISPATCH_TOKEN):
        raise auth_failed()


# ── 1. Dispatch ─────────────────────────────────────────────
@router.post(
    "/dispatch",
    response_model=DispatchSummaryOut,
    summary="Deliver pending webhook events",
    description="Runs one dispatcher batch. Intended for a scheduler, not for end users.",
    dependencies=[Depends(require_dispatch_token)],
)
async def dispatch(session: DbSession) -> DispatchSummaryOut:
    try:
        summary = await dispatch_pending_events(session)
    except SQLAlchemyError as exc:
        logger.exception("Webhook dispatch run failed")
        raise APIError.internal() from exc
    return DispatchSummaryOut(
        processed=summary.processed,
        dispatched=summary.dispatched,
        webhooks=summary.webhooks,
    )


# ── 2. List ─────────────────────────────────────────────────
@router.get("", response_model=WebhookListOut, summary="List your webhooks")
async def list_webhooks(owner: Owner, session: DbSession) -> WebhookListOut:
    webhooks = await webhook_registry.list_webhooks(session, owner.user_id)
    return WebhookListOut(webhooks=[WebhookOut.model_validate(w) for w in webhooks])


# ── 3. Create ───────────────────────────────────────────────
@router.post(
    "",
    response_model=WebhookCreatedOut,
    status_code=status.HTTP_201_CREATED,
    summary="Register a webhook",
    description=(
        "Unknown event types are dropped. The signing secret is returned "
        "in this response only."
    ),
)
async def create_webhook(
    payload: WebhookCreate, owner: Owner, session: DbSession,
) -> WebhookCreatedOut:
    try:
        webhook, secret = await webhook_registry.create_webhook(session, owner.user_id, payload)
    except webhook_registry.InvalidWebhookURL as exc:
        raise APIError.bad_request(str(exc)) from exc
    return WebhookCreatedOut(webhook=WebhookOut.model_validate(webhook), secret=secret)


# ── 4. Detail ───────────────────────────────────────────────
@router.get(
    "/{webhook_id}",
    response_model=WebhookDetailOut,
    summary="Get a webhook with recent deliveries",
)
async def get_webhook(
    webhook_id: uuid.UUID, owner: Owner, session: DbSession,
) -> WebhookDetailOut:
    webhook = await _owned_webhook(session, owner, webhook_id)
    deliveries = await webhook_registry.recent_deliveries(session, webhook.id)
    return WebhookDetailOut(
        webhook=WebhookOut.model_validate(webhook),
        deliveries=[WebhookDeliveryOut.model_validate(d) for d in deliveries],
    )


# ── 5. Update ───────────────────────────────────────────────
@router.patch(
    "/{webhook_id}",
    response_model=WebhookOut,
    summary="Update a webhook",
    description="Setting status to 'active' resets the failure counter.",
)
async def update_webhook(
    webhook_id: uuid.UUID, payload: WebhookUpdate, owner: Owner, session: DbSession,
) -> WebhookOut:
    webhook = await _owned_webhook(session, owner, webhook_id)
    try:
        webhook = await webhook_registry.update_webhook(session, webhook, payload)
    except webhook_registry.InvalidWebhookURL as exc:
        raise APIError.bad_request(str(exc)) from exc
    return WebhookOut.model_validate(webhook)


# ── 6. Delete ───────────────────────────────────────────────
@router.delete("/{webhook_id}", summary="Delete a webhook")
async def delete_webhook(
    webhook_id: uuid.UUID, owner: Owner, session: DbSession,
) -> dict[str, bool]:
    webhook = await _owned_webhook(session, owner, webhook_id)
    await webhook_registry.delete_webhook(session, webhook)
    return {"success": True}
