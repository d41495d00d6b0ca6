"""
API usage tracking model for rate limiting.

Each row is the request count for one API key, one endpoint, one window.
Composite PK: (api_key_id, endpoint, window_type, window_start).

Time buckets:
  • 'minute' — floor to current minute, counted per endpoint
  • 'day'    — floor to midnight UTC, counted across all endpoints
               (stored with endpoint = '*')

Atomic increments via INSERT … ON CONFLICT DO UPDATE … RETURNING ensure
correctness under concurrent requests without external locks.
"""

import datetime
import uuid

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from technodog_api.core.database import Base


class APIUsage(Base):
    """Per-key, per-endpoint, per-window request counter."""

    __tablename__ = "api_usage"

    api_key_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("api_keys.id", ondelete="CASCADE"),
        primary_key=True,
    )
    endpoint: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
    )
    window_type: Mapped[str] = mapped_column(
        String(20),
        primary_key=True,
    )
    window_start: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        primary_key=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
    )
    request_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    __table_args__ = (
        # cleanup_old_usage deletes by window_start
        Index("ix_api_usage_window_start", "window_start"),
    )

    def __repr__(self) -> str:
        return (
            f"<APIUsage key={self.api_key_id!s:.8} endpoint={self.endpoint} "
            f"type={self.window_type} count={self.request_count}>"
        )
