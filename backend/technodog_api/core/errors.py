"""
Public API error type and FastAPI exception handlers.

Every error response, on every endpoint, has the same body:

    {"error": {"code": "...", "message": "...", "requestId": "req_..."}}

Codes:
  • unauthorized   (401) — one generic message for every auth failure
  • rate_limited   (429) — carries X-RateLimit-* / Retry-After headers
  • bad_request    (400) — message is safe to show verbatim
  • not_found      (404)
  • internal_error (500) — generic message; the real cause is only logged
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from technodog_api.core.request_id import get_request_id

logger = logging.getLogger(__name__)

UNAUTHORIZED = "unauthorized"
RATE_LIMITED = "rate_limited"
BAD_REQUEST = "bad_request"
NOT_FOUND = "not_found"
INTERNAL_ERROR = "internal_error"

_GENERIC_INTERNAL_MESSAGE = "An internal error occurred. Please try again later."


class APIError(Exception):
    """Raised by routers/dependencies; rendered by api_error_handler."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.headers = dict(headers or {})

    @classmethod
    def bad_request(cls, message: str, headers: dict[str, str] | None = None) -> APIError:
        return cls(BAD_REQUEST, message, status.HTTP_400_BAD_REQUEST, headers)

    @classmethod
    def not_found(cls, message: str, headers: dict[str, str] | None = None) -> APIError:
        return cls(NOT_FOUND, message, status.HTTP_404_NOT_FOUND, headers)

    @classmethod
    def internal(cls, headers: dict[str, str] | None = None) -> APIError:
        return cls(
            INTERNAL_ERROR,
            _GENERIC_INTERNAL_MESSAGE,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            headers,
        )


def error_body(code: str, message: str, request_id: str) -> dict:
    return {"error": {"code": code, "message": message, "requestId": request_id}}


def response_headers(request: Request, request_id: str) -> dict[str, str]:
    """X-RateLimit-* headers of an already rate-checked request, plus X-Request-Id."""
    carried = getattr(request.state, "rate_limit_headers", None) or {}
    return {**carried, "X-Request-Id": request_id}


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    request_id = get_request_id(request)
    if exc.status_code >= 500:
        logger.error("API error %s [%s]: %s", exc.code, request_id, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, request_id),
        headers={**response_headers(request, request_id), **exc.headers},
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    """Map FastAPI's 422 validation errors onto the bad_request shape."""
    request_id = get_request_id(request)
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(
        str(p) for p in first.get("loc", ()) if p not in ("query", "body", "path", "header")
    )
    message = first.get("msg", "Invalid request")
    if location:
        message = f"Invalid parameter '{location}': {message}"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(BAD_REQUEST, message, request_id),
        headers=response_headers(request, request_id),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log the cause, return only a correlation id."""
    request_id = get_request_id(request)
    logger.exception("Unhandled error [%s] on %s", request_id, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(INTERNAL_ERROR, _GENERIC_INTERNAL_MESSAGE, request_id),
        headers=response_headers(request, request_id),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, api_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)
