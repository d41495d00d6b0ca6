"""
Delete expired rate-limit windows from api_usage.

Usage:
    python -m scripts.cleanup_usage [DAYS]

Rows whose window started more than DAYS days ago (default 2) are
removed. Minute windows are useless after a minute and day windows after
a day, so anything older only costs index space.
"""

import asyncio
import datetime
import logging
import sys

# Ensure the project root is on the path
sys.path.insert(0, ".")

from technodog_api.core.database import async_session_factory, engine
from technodog_api.services.rate_limiter import cleanup_old_usage

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger("cleanup_usage")


async def main() -> None:
    days = int(sys.argv[1]) if len(sys.argv) > 1 else 2

    async with async_session_factory() as session:
        deleted = await cleanup_old_usage(session, older_than=datetime.timedelta(days=days))

    logger.info("Deleted %d usage rows older than %d days", deleted, days)
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
