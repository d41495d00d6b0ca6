"""
Webhook secrets and HMAC-SHA256 payload signatures.

Header format (one per delivery):

    X-Webhook-Signature: t=<unix seconds>,v1=<hex HMAC-SHA256>

The signed message is f"{t}.{raw_body}" keyed with the webhook secret.
Subscribers recompute it over the exact bytes they received and compare
in constant time; `t` lets them reject replays outside a tolerance.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import time

WEBHOOK_SECRET_PREFIX = "whsec_"


def generate_webhook_secret() -> str:
    """whsec_ + 32 random bytes as 64 hex chars."""
    return WEBHOOK_SECRET_PREFIX + secrets.token_hex(32)


def sign_payload(secret: str, timestamp: int, body: str) -> str:
    message = f"{timestamp}.{body}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def signature_header(secret: str, timestamp: int, body: str) -> str:
    return f"t={timestamp},v1={sign_payload(secret, timestamp, body)}"


def parse_signature_header(header: str) -> tuple[int, str]:
    """
    Split 't=...,v1=...' into (timestamp, hex signature).

    Raises:
        ValueError: missing part or non-integer timestamp.
    """
    parts = dict(
        item.split("=", 1) for item in header.split(",") if "=" in item
    )
    if "t" not in parts or "v1" not in parts:
        raise ValueError("signature header must contain t= and v1=")
    return int(parts["t"]), parts["v1"]


def verify_signature(
    secret: str,
    header: str,
    body: str,
    tolerance: int | None = None,
    now: int | None = None,
) -> bool:
    """
    Check a delivery signature the way a subscriber would.

    Args:
        secret:    The webhook's whsec_ secret.
        header:    Value of X-Webhook-Signature.
        body:      Raw request body as received.
        tolerance: Max age in seconds of `t`; None disables the check.
        now:       Current unix time (for tests).
    """
    try:
        timestamp, signature = parse_signature_header(header)
    except ValueError:
        return False

    if tolerance is not None:
        current = int(time.time()) if now is None else now
        if abs(current - timestamp) > tolerance:
            return False

    expected = sign_payload(secret, timestamp, body)
    return hmac.compare_digest(expected, signature)
