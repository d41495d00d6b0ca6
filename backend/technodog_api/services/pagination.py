"""
Opaque pagination cursors.

  • Search pages by time: cursor = base64("<ISO-8601 updated_at>|<id>") of
    the last row on the page. The next page asks for rows ordered after
    that pair, so rows sharing a timestamp are neither skipped nor
    repeated. A bare timestamp (no "|<id>") is still accepted.
  • Chunk pages by position: cursor = base64(str(start offset)).
    Chunk order is static per document, so an offset is stable.

Cursors are encoded with the standard base64 alphabet. Decoding also
accepts the URL-safe alphabet and a '+' mangled into a space by a
client that forgot to URL-encode.
"""

from __future__ import annotations

import base64
import binascii
import datetime
from dataclasses import dataclass
from dataclasses import dataclass


class InvalidCursor(ValueError):
    """Raised when a client-supplied cursor cannot be decoded."""


def _b64encode(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def _b64decode(cursor: str) -> str:
    cleaned = cursor.strip().replace(" ", "+")
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        return base64.b64decode(cleaned, altchars=b"-_", validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise InvalidCursor("Invalid cursor format") from exc


def as_utc(value: datetime.datetime) -> datetime.datetime:
    """Treat naive timestamps (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


def parse_timestamp(raw: str) -> datetime.datetime:
    """Parse an ISO-8601 timestamp; a trailing 'Z' means UTC."""
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.datetime.fromisoformat(text))


# ── Time cursors (search) ───────────────────────────────────
@dataclass(frozen=True)
class TimeCursor:
    updated_at: datetime.datetime
    doc_id: str | None = None


def encode_time_cursor(value: datetime.datetime, doc_id: str | None = None) -> str:
    text = as_utc(value).isoformat()
    if doc_id is not None:
        text = f"{text}|{doc_id}"
    return _b64encode(text)


def decode_time_cursor(cursor: str) -> TimeCursor:
    stamp, _, doc_id = _b64decode(cursor).partition("|")
    try:
        updated_at = parse_timestamp(stamp)
    except ValueError as exc:
        raise InvalidCursor("Invalid cursor format") from exc
    return TimeCursor(updated_at=updated_at, doc_id=doc_id or None)


# ── Offset cursors (chunks) ─────────────────────────────────
def encode_offset_cursor(offset: int) -> str:
    return _b64encode(str(offset))


def decode_offset_cursor(cursor: str) -> int:
    decoded = _b64decode(cursor)
    try:
        offset = int(decoded)
    except ValueError as exc:
        raise InvalidCursor("Invalid cursor format") from exc
    if offset < 0:
        raise InvalidCursor("Invalid cursor format")
    return offset
