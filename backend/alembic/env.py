"""
Alembic environment for the developer API schema.

  • The URL is settings.DATABASE_URL, handed straight to the engine.
    It is never written back into the ini file, where '%' in a password
    would be read as configparser interpolation.
  • Offline and online runs share one set of context options. SQLite
    (the test database) gets batch mode, since it cannot ALTER most
    columns in place.
  • Online runs go through an async engine with NullPool, like the app.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy.engine import Connection, make_url
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from technodog_api.core.config import settings
from technodog_api.core.database import Base

# Register every table on Base.metadata for autogenerate
import technodog_api.models.api_key  # noqa: F401
import technodog_api.models.api_usage  # noqa: F401
import technodog_api.models.document  # noqa: F401
import technodog_api.models.webhook  # noqa: F401

if context.config.config_file_name is not None:
    fileConfig(context.config.config_file_name)

DATABASE_URL = make_url(settings.DATABASE_URL)


def _context_options(dialect_name: str) -> dict:
    return {
        "target_metadata": Base.metadata,
        "compare_type": True,
        "render_as_batch": dialect_name == "sqlite",
    }


# ── Offline: emit SQL to stdout ─────────────────────────────
def run_offline() -> None:
    context.configure(
        url=DATABASE_URL,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_context_options(DATABASE_URL.get_backend_name()),
    )
    with context.begin_transaction():
        context.run_migrations()


# ── Online: apply against the live database ─────────────────
def _apply(connection: Connection) -> None:
    context.configure(connection=connection, **_context_options(connection.dialect.name))
    with context.begin_transaction():
        context.run_migrations()


async def run_online() -> None:
    engine = create_async_engine(DATABASE_URL, poolclass=NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_apply)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_offline()
else:
    asyncio.run(run_online())
