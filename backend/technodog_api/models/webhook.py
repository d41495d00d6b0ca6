"""
SQLAlchemy models for the webhook subsystem.

Three tables:
  • webhooks               — subscriber registrations (owner-scoped)
  • pending_webhook_events — queue of entity changes awaiting fan-out
  • webhook_deliveries     — immutable audit log, one row per attempt

Webhook state machine:
  active ──(N consecutive failures)──▶ failed ──(owner PATCH status=active)──▶ active
  active ◀──────────(owner PATCH)──────────▶ paused

Only 'active' webhooks receive deliveries.
"""

import datetime
import uuid

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from technodog_api.core.database import Base, JsonType, utcnow

WEBHOOK_STATUS_ACTIVE = "active"
WEBHOOK_STATUS_PAUSED = "paused"
WEBHOOK_STATUS_FAILED = "failed"


class Webhook(Base):
    """A subscriber endpoint with its signing secret and event filter."""

    __tablename__ = "webhooks"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, nullable=False, index=True,
    )
    name: Mapped[str] = mapped_column(
        Text, nullable=False, default="My Webhook",
    )
    url: Mapped[str] = mapped_column(Text, nullable=False)
    # Stored in clear: it is the HMAC key, needed at every delivery.
    secret: Mapped[str] = mapped_column(Text, nullable=False)
    events: Mapped[list[str]] = mapped_column(
        JsonType, nullable=False, default=lambda: ["content.updated"],
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=WEBHOOK_STATUS_ACTIVE,
        server_default=WEBHOOK_STATUS_ACTIVE,
    )

    # ── Health bookkeeping ──────────────────────────────────
    failure_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0",
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_triggered_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    last_success_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    last_failure_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    def subscribes_to(self, event_type: str) -> bool:
        return event_type in self.events or "*" in self.events

    def __repr__(self) -> str:
        return (
            f"<Webhook id={self.id!s:.8} status={self.status} "
            f"failures={self.failure_count}>"
        )


class PendingWebhookEvent(Base):
    """An entity change waiting to be fanned out to subscribers."""

    __tablename__ = "pending_webhook_events"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[dict] = mapped_column(
        JsonType, nullable=False, default=dict,
    )
    processed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false",
    )
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0",
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        # Dispatcher reads: WHERE processed = false ORDER BY created_at
        Index("ix_pending_webhook_events_queue", "processed", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<PendingWebhookEvent id={self.id!s:.8} type={self.event_type} "
            f"processed={self.processed}>"
        )


class WebhookDelivery(Base):
    """One delivery attempt. Written once, never updated."""

    __tablename__ = "webhook_deliveries"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    webhook_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("webhooks.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    payload: Mapped[dict] = mapped_column(JsonType, nullable=False)
    response_status: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    success: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_webhook_deliveries_webhook_id", "webhook_id", "created_at"),
        Index("ix_webhook_deliveries_event_id", "event_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<WebhookDelivery webhook={self.webhook_id!s:.8} "
            f"status={self.response_status} ok={self.success}>"
        )
