#!/usr/bin/env python3
"""
Database maintenance entry point for the link store.

    python -m linkstore.init_db            create the user/account/link_request tables
    python -m linkstore.init_db --reset    drop and recreate them (asks first)
    python -m linkstore.init_db --sweep    delete expired link requests

The sweep is meant to be scheduled by the caller (cron, systemd timer, ...).
"""
import asyncio
import sys

from linkstore.config import settings
from linkstore.db import create_tables, drop_tables, dispose_engine
from linkstore.logging_config import get_logger, setup_logging
from linkstore.manager import LinkManager
from linkstore.utils import async_retry

logger = get_logger(__name__)


async def init_db():
    """Initialize database tables."""
    logger.info("creating_tables")
    try:
        await create_tables()
        logger.info("tables_created", tables=["user", "account", "link_request"])
    except Exception as e:
        logger.error("table_creation_failed", error=str(e))
        raise


async def reset_db(confirm=input):
    """Drop and recreate all tables. WARNING: This deletes all data!"""
    response = confirm("This will DELETE ALL linked accounts. Continue? (yes/no): ")

    if response.lower() != "yes":
        logger.info("reset_cancelled")
        return False

    logger.warning("dropping_tables")
    try:
        await drop_tables()
        await create_tables()
        logger.info("database_reset")
    except Exception as e:
        logger.error("database_reset_failed", error=str(e))
        raise
    return True


@async_retry()
async def sweep(manager: LinkManager = None) -> int:
    """Remove expired link requests, retrying transient store failures."""
    manager = manager or LinkManager()
    return await manager.sweep_expired_link_requests()


async def main(argv: list[str]) -> int:
    setup_logging(settings.debug)
    try:
        if "--reset" in argv:
            await reset_db()
        elif "--sweep" in argv:
            await sweep()
        else:
            await init_db()
    finally:
        await dispose_engine()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1:])))
