"""
Shared fixtures.

Every test gets its own SQLite file (aiosqlite) with the full schema.
The app's get_db_session dependency and the module-level session factory
are both pointed at it, so request handlers and background tasks see the
same data as the test.
"""

import datetime
import os
import uuid

# Settings are read at import time.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SESSION_JWT_SECRET", "test-session-secret")

import httpx
import pytest
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from technodog_api.core import database
from technodog_api.core.config import settings
from technodog_api.core.database import Base, get_db_session
from technodog_api.main import app
from technodog_api.models.api_key import APIKey
from technodog_api.models.document import Document
from technodog_api.services.api_keys import issue_api_key

# Import all models so Base.metadata is fully populated
import technodog_api.models.api_usage  # noqa: F401
import technodog_api.models.webhook  # noqa: F401


# ── Database ────────────────────────────────────────────────
@pytest.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine, monkeypatch):
    factory = async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)
    monkeypatch.setattr(database, "async_session_factory", factory)
    return factory


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


# ── HTTP client ─────────────────────────────────────────────
@pytest.fixture
async def client(session_factory):
    async def override_session():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_db_session] = override_session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    app.dependency_overrides.clear()


# ── Credentials ─────────────────────────────────────────────
@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
async def api_key(session, user_id) -> tuple[APIKey, str]:
    """An active key for `user_id`; returns (row, raw_key)."""
    return await issue_api_key(session, user_id)


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def make_session_token(user_id: uuid.UUID, **claims) -> str:
    payload = {
        "sub": str(user_id),
        "aud": settings.SESSION_JWT_AUDIENCE,
        "exp": datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(hours=1),
        **claims,
    }
    return jwt.encode(payload, settings.SESSION_JWT_SECRET, algorithm=settings.SESSION_JWT_ALGORITHM)


@pytest.fixture
def owner_headers(user_id) -> dict[str, str]:
    return bearer(make_session_token(user_id))


# ── Documents ───────────────────────────────────────────────
BASE_TIME = datetime.datetime(2026, 1, 15, 12, 0, tzinfo=datetime.timezone.utc)


async def add_document(session, doc_id: str, content: str, *, minutes_ago: int = 0, **fields) -> Document:
    stamp = BASE_TIME - datetime.timedelta(minutes=minutes_ago)
    doc = Document(
        id=doc_id,
        title=fields.pop("title", doc_id),
        content=content,
        created_at=stamp,
        updated_at=stamp,
        **fields,
    )
    session.add(doc)
    await session.commit()
    return doc
