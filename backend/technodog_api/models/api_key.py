"""
API key model — a developer's credential for the public /api/v1 endpoints.

Security notes:
  • Raw API keys are NEVER stored. Only a SHA-256 hash is persisted.
  • The `prefix` column stores the display part (e.g. "td_live_AB12CD")
    so keys can be told apart in the UI without exposing the secret.
  • `status` allows revocation without deletion (audit trail).
    'revoked' is terminal — validation only ever matches 'active'.
"""

import datetime
import uuid

from sqlalchemy import DateTime, Integer, String, Text, Uuid
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from technodog_api.core.config import settings
from technodog_api.core.database import Base, JsonType, utcnow

KEY_STATUS_ACTIVE = "active"
KEY_STATUS_REVOKED = "revoked"


class APIKey(Base):
    """Hashed API key belonging to a user."""

    __tablename__ = "api_keys"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="Default API Key",
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    prefix: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )
    key_hash: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        unique=True,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=KEY_STATUS_ACTIVE,
        server_default=KEY_STATUS_ACTIVE,
    )
    scopes: Mapped[list[str]] = mapped_column(
        JsonType,
        nullable=False,
        default=lambda: ["read:public"],
    )

    # ── Limits ──────────────────────────────────────────────
    rate_limit_per_minute: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=lambda: settings.DEFAULT_RATE_LIMIT_PER_MINUTE,
    )
    rate_limit_per_day: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=lambda: settings.DEFAULT_RATE_LIMIT_PER_DAY,
    )

    # ── Usage ───────────────────────────────────────────────
    total_requests: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )
    last_used_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<APIKey id={self.id!s:.8} prefix={self.prefix!r} "
            f"status={self.status}>"
        )
