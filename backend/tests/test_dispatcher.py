"""Webhook dispatcher: signed delivery, failure threshold, reactivation, retry policy."""

import json

import httpx
from sqlalchemy import func, select

from technodog_api.core.config import settings
from technodog_api.models.webhook import (
    WEBHOOK_STATUS_ACTIVE,
    WEBHOOK_STATUS_FAILED,
    PendingWebhookEvent,
    Webhook,
    WebhookDelivery,
)
from technodog_api.schemas.webhooks import WebhookCreate, WebhookUpdate
from technodog_api.services.signing import (
    parse_signature_header,
    sign_payload,
    signature_header,
    verify_signature,
)
from technodog_api.services.webhook_dispatcher import (
    USER_AGENT,
    dispatch_pending_events,
    enqueue_webhook_event,
)
from technodog_api.services.webhook_registry import create_webhook, update_webhook


class Recorder:
    """MockTransport handler that records requests and replies with `status`."""

    def __init__(self, status: int = 200):
        self.status = status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, text="ok" if self.status < 400 else "boom")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


async def _webhook(session, user_id, events=None, url="https://subscriber.example/hook"):
    webhook, secret = await create_webhook(session, user_id, WebhookCreate(url=url, events=events))
    return webhook, secret


async def _enqueue(session, n=1, event_type="content.updated"):
    events = []
    for i in range(n):
        events.append(await enqueue_webhook_event(
            session, event_type, "document", f"doc-{i}", {"title": f"Doc {i}"},
        ))
    await session.commit()
    return events


async def _delivery_count(session, webhook_id) -> int:
    stmt = select(func.count()).select_from(WebhookDelivery).where(WebhookDelivery.webhook_id == webhook_id)
    return (await session.execute(stmt)).scalar_one()


# ── Signing ─────────────────────────────────────────────────
def test_signature_round_trip():
    header = signature_header("whsec_test", 1700000000, '{"a":1}')
    assert header.startswith("t=1700000000,v1=")
    assert verify_signature("whsec_test", header, '{"a":1}')
    assert not verify_signature("whsec_other", header, '{"a":1}')
    assert not verify_signature("whsec_test", header, '{"a":2}')
    assert not verify_signature("whsec_test", "garbage", '{"a":1}')


def test_signature_tolerance():
    header = signature_header("whsec_test", 1000, "{}")
    assert verify_signature("whsec_test", header, "{}", tolerance=300, now=1200)
    assert not verify_signature("whsec_test", header, "{}", tolerance=300, now=1400)


# ── Delivery ────────────────────────────────────────────────
async def test_delivery_is_signed_and_recorded(session, user_id):
    webhook, secret = await _webhook(session, user_id)
    [event] = await _enqueue(session)
    recorder = Recorder(200)

    async with recorder.client() as http:
        summary = await dispatch_pending_events(session, client=http)

    assert (summary.processed, summary.dispatched, summary.webhooks) == (1, 1, 1)

    [request] = recorder.requests
    body = request.content.decode()
    timestamp, v1 = parse_signature_header(request.headers["X-Webhook-Signature"])
    assert sign_payload(secret, timestamp, body) == v1
    assert request.headers["X-Webhook-ID"] == str(event.id)
    assert request.headers["User-Agent"] == USER_AGENT
    assert request.headers["Content-Type"] == "application/json"

    envelope = json.loads(body)
    assert envelope["id"] == str(event.id)
    assert envelope["type"] == "content.updated"
    assert envelope["created"].endswith("Z")
    assert envelope["data"] == {"entity_type": "document", "entity_id": "doc-0", "title": "Doc 0"}

    await session.refresh(event)
    await session.refresh(webhook)
    assert event.processed
    assert webhook.last_success_at is not None
    delivery = (await session.execute(select(WebhookDelivery))).scalar_one()
    assert delivery.success
    assert delivery.response_status == 200
    assert delivery.event_id == event.id


async def test_only_subscribed_webhooks_receive(session, user_id):
    await _webhook(session, user_id, events=["content.deleted"])
    wildcard, _ = await _webhook(session, user_id, events=["*"], url="https://wild.example/hook")
    await _enqueue(session, event_type="content.created")
    recorder = Recorder(200)

    async with recorder.client() as http:
        await dispatch_pending_events(session, client=http)

    assert [str(r.url) for r in recorder.requests] == ["https://wild.example/hook"]
    assert await _delivery_count(session, wildcard.id) == 1


async def test_no_webhooks_marks_events_processed(session):
    events = await _enqueue(session, n=3)
    async with Recorder().client() as http:
        summary = await dispatch_pending_events(session, client=http)

    assert (summary.processed, summary.dispatched, summary.webhooks) == (3, 0, 0)
    for event in events:
        await session.refresh(event)
        assert event.processed


async def test_empty_queue(session):
    async with Recorder().client() as http:
        summary = await dispatch_pending_events(session, client=http)
    assert (summary.processed, summary.dispatched, summary.webhooks) == (0, 0, 0)


async def test_network_error_is_recorded_not_raised(session, user_id):
    webhook, _ = await _webhook(session, user_id)
    await _enqueue(session)

    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(refuse)) as http:
        summary = await dispatch_pending_events(session, client=http)

    assert summary.dispatched == 0
    await session.refresh(webhook)
    assert webhook.failure_count == 1
    assert webhook.last_error == "connection refused"
    delivery = (await session.execute(select(WebhookDelivery))).scalar_one()
    assert not delivery.success
    assert delivery.response_status is None


# ── Failure threshold & reactivation ────────────────────────
async def test_fifth_failure_disables_and_sixth_is_not_attempted(session, user_id):
    webhook, _ = await _webhook(session, user_id)
    await _enqueue(session, n=6)
    failing = Recorder(500)

    async with failing.client() as http:
        summary = await dispatch_pending_events(session, client=http)

    assert summary.processed == 6
    assert len(failing.requests) == 5
    await session.refresh(webhook)
    assert webhook.status == WEBHOOK_STATUS_FAILED
    assert webhook.failure_count == 5
    assert webhook.last_error == "boom"
    assert await _delivery_count(session, webhook.id) == 5

    # A later event is not attempted either.
    await _enqueue(session, n=1)
    async with failing.client() as http:
        await dispatch_pending_events(session, client=http)
    assert await _delivery_count(session, webhook.id) == 5


async def test_reactivation_allows_immediate_success(session, user_id):
    webhook, _ = await _webhook(session, user_id)
    await _enqueue(session, n=5)
    async with Recorder(500).client() as http:
        await dispatch_pending_events(session, client=http)
    await session.refresh(webhook)
    assert webhook.status == WEBHOOK_STATUS_FAILED

    await update_webhook(session, webhook, WebhookUpdate(status="active"))
    assert webhook.failure_count == 0

    await _enqueue(session, n=1)
    async with Recorder(200).client() as http:
        summary = await dispatch_pending_events(session, client=http)

    assert summary.dispatched == 1
    await session.refresh(webhook)
    assert webhook.status == WEBHOOK_STATUS_ACTIVE
    assert webhook.failure_count == 0
    assert await _delivery_count(session, webhook.id) == 6


async def test_success_resets_failure_count(session, user_id):
    webhook, _ = await _webhook(session, user_id)
    await _enqueue(session, n=2)
    async with Recorder(503).client() as http:
        await dispatch_pending_events(session, client=http)
    await session.refresh(webhook)
    assert webhook.failure_count == 2

    await _enqueue(session, n=1)
    async with Recorder(204).client() as http:
        await dispatch_pending_events(session, client=http)
    await session.refresh(webhook)
    assert webhook.failure_count == 0
    assert webhook.last_error is None


# ── Retry policy ────────────────────────────────────────────
async def test_default_policy_is_at_most_once(session, user_id):
    await _webhook(session, user_id)
    [event] = await _enqueue(session)
    async with Recorder(500).client() as http:
        await dispatch_pending_events(session, client=http)
    await session.refresh(event)
    assert event.processed
    assert event.attempts == 1


async def test_retry_policy_redelivers_only_failed_targets(session, user_id, monkeypatch):
    monkeypatch.setattr(settings, "WEBHOOK_MAX_EVENT_ATTEMPTS", 3)
    good, _ = await _webhook(session, user_id, url="https://good.example/hook")
    bad, _ = await _webhook(session, user_id, url="https://bad.example/hook")
    [event] = await _enqueue(session)

    seen: list[str] = []

    def handler(request):
        seen.append(request.url.host)
        return httpx.Response(200 if request.url.host == "good.example" else 500)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        first = await dispatch_pending_events(session, client=http)
        await session.refresh(event)
        assert not event.processed
        assert event.attempts == 1
        assert (first.processed, first.dispatched) == (0, 1)

        await dispatch_pending_events(session, client=http)
        last = await dispatch_pending_events(session, client=http)

    assert last.processed == 1
    await session.refresh(event)
    assert event.processed
    assert event.attempts == 3
    assert seen.count("good.example") == 1
    assert seen.count("bad.example") == 3


async def test_batch_size_limits_run(session, user_id):
    await _webhook(session, user_id)
    await _enqueue(session, n=4)
    recorder = Recorder(200)
    async with recorder.client() as http:
        summary = await dispatch_pending_events(session, client=http, batch_size=3)
    assert summary.processed == 3
    remaining = (await session.execute(
        select(func.count()).select_from(PendingWebhookEvent).where(PendingWebhookEvent.processed.is_(False))
    )).scalar_one()
    assert remaining == 1


# ── Dispatch endpoint ───────────────────────────────────────
async def test_dispatch_endpoint_requires_token_when_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "DISPATCH_TOKEN", "cron-secret")

    denied = await client.post("/api/webhooks/dispatch")
    assert denied.status_code == 401

    allowed = await client.post("/api/webhooks/dispatch", headers={"X-Dispatch-Token": "cron-secret"})
    assert allowed.status_code == 200
    assert allowed.json() == {"processed": 0, "dispatched": 0, "webhooks": 0}
