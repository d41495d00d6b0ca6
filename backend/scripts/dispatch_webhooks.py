"""
Run one webhook dispatcher batch.

Usage:
    python -m scripts.dispatch_webhooks

Meant for cron (e.g. every minute). Exits non-zero only when the queue
itself cannot be read; individual delivery failures are recorded on the
webhooks and in webhook_deliveries.
"""

import asyncio
import logging
import sys

# Ensure the project root is on the path
sys.path.insert(0, ".")

from sqlalchemy.exc import SQLAlchemyError

from technodog_api.core.database import async_session_factory, engine
from technodog_api.services.webhook_dispatcher import dispatch_pending_events

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger("dispatch_webhooks")


async def main() -> int:
    try:
        async with async_session_factory() as session:
            summary = await dispatch_pending_events(session)
    except SQLAlchemyError:
        logger.exception("Webhook dispatch run failed")
        return 1
    finally:
        await engine.dispose()

    logger.info(
        "processed=%d dispatched=%d webhooks=%d",
        summary.processed, summary.dispatched, summary.webhooks,
    )
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
