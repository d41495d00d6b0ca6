"""
API key hashing utilities.

Security notes:
  • SHA-256 is used for key hashing — acceptable for API keys because
    they are high-entropy random strings (not low-entropy passwords).
    bcrypt/argon2 would add latency to every request.
  • Raw keys look like td_live_<PREFIX>.<64 hex chars>. The td_live_
    prefix is a format convention checked before any hashing or lookup.
  • generate_api_key() returns the raw key exactly once — the caller
    must display it to the user immediately. It is never stored.
"""

import hashlib
import secrets
import string

from technodog_api.core.config import settings

_PREFIX_ALPHABET = string.ascii_uppercase + string.digits
_PREFIX_LENGTH = 6


def hash_api_key(raw_key: str) -> str:
    """
    Hash a raw API key using SHA-256.

    Returns the hex digest string for storage/lookup.
    """
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def has_key_format(raw_key: str | None) -> bool:
    """True if the credential carries the expected td_live_ prefix."""
    return bool(raw_key) and raw_key.startswith(settings.API_KEY_PREFIX)


def generate_api_key() -> tuple[str, str, str]:
    """
    Generate a new API key.

    Returns:
        (raw_key, display_prefix, key_hash) — raw_key is shown once,
        display_prefix and key_hash are stored.
    """
    short = "".join(secrets.choice(_PREFIX_ALPHABET) for _ in range(_PREFIX_LENGTH))
    random_part = secrets.token_hex(32)  # 64 hex chars = 256 bits
    display_prefix = f"{settings.API_KEY_PREFIX}{short}"
    raw_key = f"{display_prefix}.{random_part}"
    return raw_key, display_prefix, hash_api_key(raw_key)
