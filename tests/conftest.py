"""
This file contains shared fixtures for the test suite.
"""

import os

import pytest
import pytest_asyncio

# Set env vars before any application modules are imported
os.environ.setdefault("TEST_MODE", "1")
os.environ.setdefault("DATABASE_PATH", ":memory:")

from cqldao.core.dao import EntityDAO
from cqldao.db.connection import SQLiteDriver

from tests.entities import (
    CONSUMER_QUERIES,
    CONSUMER_SCHEMA,
    PLUGIN_QUERIES,
    PLUGIN_SCHEMA,
    SERVICE_QUERIES,
    SERVICE_SCHEMA,
    TABLES_SQL,
)


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """
    Clear the cached settings so environment patches apply per test.
    """
    from cqldao.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def driver():
    """In-memory SQLite driver with the sample tables created."""
    drv = SQLiteDriver(":memory:")
    await drv.executescript(TABLES_SQL)
    yield drv
    await drv.close()


@pytest_asyncio.fixture
async def service_dao(driver):
    return await EntityDAO.create(driver, SERVICE_SCHEMA, SERVICE_QUERIES)


@pytest_asyncio.fixture
async def consumer_dao(driver):
    return await EntityDAO.create(driver, CONSUMER_SCHEMA, CONSUMER_QUERIES)


@pytest_asyncio.fixture
async def plugin_dao(driver):
    return await EntityDAO.create(driver, PLUGIN_SCHEMA, PLUGIN_QUERIES)


@pytest.fixture
def make_service():
    """
    Factory for service drafts with unique defaults.
    """
    counter = {"n": 0}

    def factory(**overrides):
        counter["n"] += 1
        n = counter["n"]
        draft = {
            "name": f"service-{n}",
            "public_dns": f"service-{n}.example.com",
            "target_url": f"http://upstream-{n}.example.com",
        }
        draft.update(overrides)
        return draft

    return factory
