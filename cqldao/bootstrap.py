"""Process start-up helpers: logging setup and driver construction."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from .config import AppSettings, get_settings
from .db.connection import Driver, SQLiteDriver
from .utils.log_context import OperationIdFilter

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(operation_id)s] %(message)s"


def configure_logging(settings: Optional[AppSettings] = None) -> None:
    """Configure root logging at the settings' level, tagging operation ids."""
    settings = settings or get_settings()
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(OperationIdFilter())
    logging.basicConfig(
        level=settings.log_level_value,
        format=LOG_FORMAT,
        handlers=[handler],
        force=True,
    )


def create_driver(settings: Optional[AppSettings] = None) -> Driver:
    """Build the driver adapter selected by ``DATABASE_BACKEND``."""
    settings = settings or get_settings()
    db = settings.db
    if db.backend == "cassandra":
        from .db.cassandra import CassandraDriver

        return CassandraDriver(contact_points=db.contact_points, keyspace=db.keyspace, port=db.port)
    return SQLiteDriver(path=db.path, pool_size=db.pool_size, pool_timeout=db.pool_timeout)


@asynccontextmanager
async def open_driver(settings: Optional[AppSettings] = None) -> AsyncIterator[Driver]:
    """
    Connect the configured driver for the duration of the block.

    Usage:
        async with open_driver() as driver:
            dao = await EntityDAO.create(driver, schema, queries)
    """
    driver = create_driver(settings)
    await driver.connect()
    logger.info("Driver %s connected", type(driver).__name__)
    try:
        yield driver
    finally:
        await driver.close()
        logger.info("Driver %s closed", type(driver).__name__)
