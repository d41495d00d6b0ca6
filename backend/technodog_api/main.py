"""
FastAPI application entrypoint.

Lifespan:
  • On startup: verify DB connectivity.
  • On shutdown: dispose the engine cleanly.

Routers:
  • /api/v1       — public developer API (API key + rate limit)
  • /api/webhooks — webhook management + dispatch trigger (session auth)
  • /api/keys     — API key management (session auth)
  • /health       — shallow liveness probe
"""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from technodog_api.core.config import settings
from technodog_api.core.database import engine
from technodog_api.core.errors import register_error_handlers
from technodog_api.core.request_id import RequestIdMiddleware
from technodog_api.routers.api_keys import router as api_keys_router
from technodog_api.routers.chunks import router as chunks_router
from technodog_api.routers.docs import router as docs_router
from technodog_api.routers.ping import router as ping_router
from technodog_api.routers.search import router as search_router
from technodog_api.routers.webhooks import router as webhooks_router

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""

    # Startup — verify DB is reachable
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection verified ✓")
    except (SQLAlchemyError, OSError):
        logger.warning(
            "Could not reach the database on startup. "
            "The app will start, but requests will fail until the DB is available."
        )

    yield  # ← application runs here

    # Shutdown — clean up connection pool
    await engine.dispose()
    logger.info("Database engine disposed ✓")


# ── App ─────────────────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description=(
        "techno.dog developer API — search and chunked retrieval over the "
        "knowledge base, API keys, and signed webhooks."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    expose_headers=[
        "X-RateLimit-Limit",
        "X-RateLimit-Remaining",
        "X-RateLimit-Reset",
        "Retry-After",
        "X-Request-Id",
    ],
)
app.add_middleware(RequestIdMiddleware)
register_error_handlers(app)

# Mount routers
app.include_router(search_router, prefix="/api/v1")
app.include_router(chunks_router, prefix="/api/v1")
app.include_router(docs_router, prefix="/api/v1")
app.include_router(ping_router, prefix="/api/v1")
app.include_router(webhooks_router, prefix="/api/webhooks")
app.include_router(api_keys_router, prefix="/api/keys")


# ── Health check ────────────────────────────────────────────
@app.get(
    "/health",
    tags=["System"],
    summary="Liveness probe",
)
async def health_check() -> dict[str, str]:
    """Shallow health check — confirms the process is alive."""
    return {"status": "healthy"}
