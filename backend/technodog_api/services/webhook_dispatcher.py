"""
Webhook dispatcher — fans queued entity changes out to subscribers.

One run:
  1. Load up to WEBHOOK_BATCH_SIZE unprocessed events, oldest first
  2. Load active webhooks (failure of 1 or 2 fails the whole run)
  3. No active webhooks → mark every loaded event processed, done
  4. For each event, for each subscribed webhook still active:
       POST the signed envelope, record a WebhookDelivery,
       update the webhook's health counters
  5. Mark the event processed once all its attempts are done

Delivery is sequential: one event at a time, one webhook at a time.
Webhook rows are updated in place, so a webhook that reaches
WEBHOOK_MAX_FAILURES during this run is skipped for the remaining events.

Retry policy (WEBHOOK_MAX_EVENT_ATTEMPTS):
  • 1 (default): at-most-once. Every event is processed after one run.
  • N > 1: an event with a failed delivery stays queued until N runs
    have tried it. Later runs only target webhooks that have no
    successful delivery recorded for that event.

Delivery failures never propagate to the caller; they are recorded.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from technodog_api.core.config import settings
from technodog_api.core.database import utcnow
from technodog_api.models.webhook import (
    WEBHOOK_STATUS_ACTIVE,
    WEBHOOK_STATUS_FAILED,
    PendingWebhookEvent,
    Webhook,
    WebhookDelivery,
)
from technodog_api.schemas.webhooks import WebhookEnvelope
from technodog_api.services.signing import signature_header

logger = logging.getLogger(__name__)

USER_AGENT = "TECHNO.DOG-Webhooks/1.0"
MAX_ERROR_CHARS = 500
MAX_RESPONSE_BODY_CHARS = 1000


@dataclass
class DispatchSummary:
    processed: int = 0
    dispatched: int = 0
    webhooks: int = 0


async def enqueue_webhook_event(
    session: AsyncSession,
    event_type: str,
    entity_type: str,
    entity_id: str,
    payload: dict | None = None,
) -> PendingWebhookEvent:
    """
    Queue an entity change for delivery.

    Added to the caller's session and flushed; the caller commits it
    together with the entity write that produced it.
    """
    event = PendingWebhookEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        payload=payload or {},
    )
    session.add(event)
    await session.flush()
    return event


def build_envelope(event: PendingWebhookEvent) -> str:
    """Serialized body POSTed to subscribers. Signed byte-for-byte."""
    created = utcnow().isoformat(timespec="milliseconds").replace("+00:00", "Z")
    envelope = WebhookEnvelope(
        id=event.id,
        type=event.event_type,
        created=created,
        data={
            "entity_type": event.entity_type,
            "entity_id": event.entity_id,
            **(event.payload or {}),
        },
    )
    return envelope.model_dump_json()


async def _deliver(
    session: AsyncSession,
    client: httpx.AsyncClient,
    webhook: Webhook,
    event: PendingWebhookEvent,
) -> bool:
    body = build_envelope(event)
    timestamp = int(time.time())
    headers = {
        "Content-Type": "application/json",
        "X-Webhook-Signature": signature_header(webhook.secret, timestamp, body),
        "X-Webhook-ID": str(event.id),
        "User-Agent": USER_AGENT,
    }

    response_status: int | None = None
    response_body = ""
    success = False
    started = time.monotonic()
    try:
        response = await client.post(webhook.url, content=body, headers=headers)
        response_status = response.status_code
        response_body = response.text
        success = response.is_success
        logger.info("Webhook %s to %s: %s", webhook.id, webhook.url, response_status)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        response_body = str(exc) or type(exc).__name__
        logger.warning("Webhook %s failed: %s", webhook.id, response_body)
    duration_ms = int((time.monotonic() - started) * 1000)

    session.add(
        WebhookDelivery(
            webhook_id=webhook.id,
            event_id=event.id,
            event_type=event.event_type,
            payload=event.payload,
            response_status=response_status,
            response_body=response_body[:MAX_RESPONSE_BODY_CHARS],
            success=success,
            duration_ms=duration_ms,
        )
    )

    now = utcnow()
    webhook.last_triggered_at = now
    if success:
        webhook.failure_count = 0
        webhook.last_error = None
        webhook.last_success_at = now
    else:
        webhook.failure_count += 1
        webhook.last_failure_at = now
        webhook.last_error = (response_body or f"HTTP {response_status}")[:MAX_ERROR_CHARS]
        if webhook.failure_count >= settings.WEBHOOK_MAX_FAILURES:
            webhook.status = WEBHOOK_STATUS_FAILED
            logger.warning(
                "Webhook %s disabled after %d consecutive failures",
                webhook.id, webhook.failure_count,
            )
    return success


async def _already_delivered(
    session: AsyncSession, event: PendingWebhookEvent,
) -> set:
    stmt = select(WebhookDelivery.webhook_id).where(
        WebhookDelivery.event_id == event.id,
        WebhookDelivery.success.is_(True),
    )
    return set((await session.execute(stmt)).scalars().all())


async def dispatch_pending_events(
    session: AsyncSession,
    *,
    client: httpx.AsyncClient | None = None,
    batch_size: int | None = None,
) -> DispatchSummary:
    """
    Run one dispatcher batch.

    Args:
        session:    Session used for queue reads and all bookkeeping.
        client:     HTTP client for deliveries; one is created (and closed)
                    with WEBHOOK_TIMEOUT_SECONDS when omitted.
        batch_size: Max events per run; defaults to WEBHOOK_BATCH_SIZE.

    Raises:
        SQLAlchemyError: the queue or the webhook list could not be read.
    """
    limit = batch_size or settings.WEBHOOK_BATCH_SIZE

    # ── 1. Work queue ───────────────────────────────────────
    events_stmt = (
        select(PendingWebhookEvent)
        .where(PendingWebhookEvent.processed.is_(False))
        .order_by(PendingWebhookEvent.created_at.asc())
        .limit(limit)
    )
    events = list((await session.execute(events_stmt)).scalars().all())
    if not events:
        logger.info("No pending webhook events")
        return DispatchSummary()

    # ── 2. Subscribers ──────────────────────────────────────
    webhooks_stmt = select(Webhook).where(Webhook.status == WEBHOOK_STATUS_ACTIVE)
    webhooks = list((await session.execute(webhooks_stmt)).scalars().all())

    if not webhooks:
        for event in events:
            event.processed = True
        await session.commit()
        logger.info("No active webhooks; marked %d events processed", len(events))
        return DispatchSummary(processed=len(events))

    # ── 3. Fan-out ──────────────────────────────────────────
    logger.info("Dispatching %d events to %d active webhooks", len(events), len(webhooks))
    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT_SECONDS)
    dispatched = 0
    processed = 0
    try:
        for event in events:
            skip = await _already_delivered(session, event) if event.attempts else set()
            targets = [
                w for w in webhooks
                if w.status == WEBHOOK_STATUS_ACTIVE
                and w.subscribes_to(event.event_type)
                and w.id not in skip
            ]

            all_ok = True
            for webhook in targets:
                ok = await _deliver(session, http, webhook, event)
                dispatched += int(ok)
                all_ok = all_ok and ok

            event.attempts += 1
            event.processed = all_ok or event.attempts >= settings.WEBHOOK_MAX_EVENT_ATTEMPTS
            processed += int(event.processed)
            await session.commit()
    finally:
        if owns_client:
            await http.aclose()

    logger.info("Dispatch complete: %d webhooks sent", dispatched)
    return DispatchSummary(processed=processed, dispatched=dispatched, webhooks=len(webhooks))
