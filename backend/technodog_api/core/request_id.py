"""
Per-request correlation ids.

Every request gets an id of the form req_<base36 ms>_<6 random chars>.
It is stored on request.state, echoed in the X-Request-Id response header
and embedded in every error body so support can find the server log line.
"""

from __future__ import annotations

import secrets
import string
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_request_id() -> str:
    millis = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"req_{_to_base36(millis)}_{suffix}"


def get_request_id(request: Request) -> str:
    """Return the id for this request, creating it on first access."""
    request_id = getattr(request.state, "request_id", None)
    if request_id is None:
        request_id = generate_request_id()
        request.state.request_id = request_id
    return request_id


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Assign a request id up front and echo it on the response."""

    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[no-untyped-def]
        request_id = get_request_id(request)
        response = await call_next(request)
        response.headers.setdefault("X-Request-Id", request_id)
        return response
