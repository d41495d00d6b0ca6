"""
SQLAlchemy model for the `documents` table.

A document is one unit of editorial content (artist profile, gear page,
article…). Long documents may be stored pre-split: several rows share the
same title and carry an increasing `chunk_index` starting at 0.

Design notes:
  • metadata_ is JSON with at least `tags` (list[str]) and `type` (str).
  • ix_documents_updated_at supports the search cursor
    (ORDER BY updated_at DESC, WHERE updated_at < :cursor).
"""

import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from technodog_api.core.database import Base, JsonType, utcnow


class Document(Base):
    """One searchable content unit (or one precomputed chunk of it)."""

    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    chunk_index: Mapped[int | None] = mapped_column(Integer, nullable=True)
    source: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Column named `metadata_` because `metadata` is reserved on
    # declarative classes; maps to DB column `metadata`.
    metadata_: Mapped[dict | None] = mapped_column(
        "metadata",
        JsonType,
        nullable=True,
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

    __table_args__ = (
        Index("ix_documents_updated_at", "updated_at"),
        Index("ix_documents_title", "title"),
    )

    @property
    def tags(self) -> list[str]:
        return list((self.metadata_ or {}).get("tags") or [])

    @property
    def doc_type(self) -> str:
        return (self.metadata_ or {}).get("type") or "article"

    def __repr__(self) -> str:
        return f"<Document id={self.id!r} title={self.title!r}>"
