"""
Webhook registry — owner-scoped CRUD over the `webhooks` table.

Every function takes the owner's user_id and filters on it; a webhook
belonging to someone else behaves exactly like one that does not exist.

Validation rules:
  • url must be absolute http(s) with a host
  • events are filtered against ALLOWED_EVENTS; unknown types are dropped
    silently so older servers accept newer clients. An empty result
    falls back to DEFAULT_EVENTS.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from urllib.parse import urlsplit

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from technodog_api.models.webhook import (
    WEBHOOK_STATUS_ACTIVE,
    Webhook,
    WebhookDelivery,
)
from technodog_api.schemas.webhooks import WebhookCreate, WebhookUpdate
from technodog_api.services.signing import generate_webhook_secret

logger = logging.getLogger(__name__)

ALLOWED_EVENTS = frozenset({"content.created", "content.updated", "content.deleted", "*"})
DEFAULT_EVENTS = ["content.updated"]
DEFAULT_NAME = "My Webhook"
RECENT_DELIVERIES = 10


class InvalidWebhookURL(ValueError):
    """Raised when a webhook target is not an absolute http(s) URL."""


def validate_webhook_url(url: str) -> str:
    candidate = url.strip()
    parts = urlsplit(candidate)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise InvalidWebhookURL("Invalid URL format")
    return candidate


def filter_events(events: Iterable[str] | None) -> list[str]:
    """Keep allowed event types in request order, without duplicates."""
    selected: list[str] = []
    for event in events or []:
        if event in ALLOWED_EVENTS and event not in selected:
            selected.append(event)
    return selected or list(DEFAULT_EVENTS)


# ── Reads ───────────────────────────────────────────────────
async def list_webhooks(session: AsyncSession, user_id: uuid.UUID) -> list[Webhook]:
    stmt = (
        select(Webhook)
        .where(Webhook.user_id == user_id)
        .order_by(Webhook.created_at.desc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def get_webhook(
    session: AsyncSession, user_id: uuid.UUID, webhook_id: uuid.UUID,
) -> Webhook | None:
    stmt = select(Webhook).where(Webhook.id == webhook_id, Webhook.user_id == user_id)
    return (await session.execute(stmt)).scalar_one_or_none()


async def recent_deliveries(
    session: AsyncSession, webhook_id: uuid.UUID, limit: int = RECENT_DELIVERIES,
) -> list[WebhookDelivery]:
    stmt = (
        select(WebhookDelivery)
        .where(WebhookDelivery.webhook_id == webhook_id)
        .order_by(WebhookDelivery.created_at.desc())
        .limit(limit)
    )
    return list((await session.execute(stmt)).scalars().all())


# ── Writes ──────────────────────────────────────────────────
async def create_webhook(
    session: AsyncSession, user_id: uuid.UUID, data: WebhookCreate,
) -> tuple[Webhook, str]:
    """
    Register a webhook and return it with its freshly generated secret.

    The secret is stored for signing but is never returned again.

    Raises:
        InvalidWebhookURL: url is not absolute http(s).
    """
    url = validate_webhook_url(data.url)
    secret = generate_webhook_secret()
    webhook = Webhook(
        user_id=user_id,
        name=data.name or DEFAULT_NAME,
        url=url,
        secret=secret,
        events=filter_events(data.events),
        status=WEBHOOK_STATUS_ACTIVE,
        failure_count=0,
    )
    session.add(webhook)
    await session.commit()
    await session.refresh(webhook)

    logger.info("Webhook created: %s for user %s", webhook.id, user_id)
    return webhook, secret


async def update_webhook(
    session: AsyncSession, webhook: Webhook, changes: WebhookUpdate,
) -> Webhook:
    """
    Apply a partial update.

    Setting status to active also clears the failure history, which is
    the only way out of the automatic 'failed' state.
    """
    if changes.name:
        webhook.name = changes.name
    if changes.url is not None:
        webhook.url = validate_webhook_url(changes.url)
    if changes.events is not None:
        webhook.events = filter_events(changes.events)
    if changes.status:
        webhook.status = changes.status
        if changes.status == WEBHOOK_STATUS_ACTIVE:
            webhook.failure_count = 0
            webhook.last_error = None

    await session.commit()
    await session.refresh(webhook)
    return webhook


async def delete_webhook(session: AsyncSession, webhook: Webhook) -> None:
    # Deliveries go first so the delete does not depend on FK cascade support.
    await session.execute(
        delete(WebhookDelivery).where(WebhookDelivery.webhook_id == webhook.id)
    )
    await session.delete(webhook)
    await session.commit()
    logger.info("Webhook deleted: %s", webhook.id)
