"""
Test configuration and fixtures for the SiteScan service.

Every test gets its own sqlite+aiosqlite database file so state never leaks
between tests and no external services are needed.
"""

import os
import tempfile

from dotenv import load_dotenv

load_dotenv()

test_db_path = tempfile.mktemp(suffix=".db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{test_db_path}"
os.environ["PUBLISH_PROGRESS_EVENTS"] = "false"
os.environ["LOG_TO_FILE"] = "false"
os.environ.pop("REDIS_URL", None)

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker

from sitescan.features.scan import models  # noqa: F401  registers tables on Base.metadata
from sitescan.features.scan.services.cache.durable_tier import DurableCacheTier
from sitescan.features.scan.services.cache.unified_cache import UnifiedCache
from sitescan.features.scan.services.store.scan_store import ScanStore
from sitescan.platform.db.base import Base
from sitescan.platform.db.session import build_engine


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'sitescan_test.db'}"


@pytest_asyncio.fixture
async def session_factory(database_url):
    engine = build_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return ScanStore(session_factory)


@pytest.fixture
def durable(session_factory):
    return DurableCacheTier(session_factory)


@pytest.fixture
def cache(durable):
    return UnifiedCache(durable=durable)


@pytest_asyncio.fixture
async def unreachable_store(tmp_path):
    # sqlite cannot open a database file inside a missing directory
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'sitescan.db'}")
    yield ScanStore(async_sessionmaker(engine, expire_on_commit=False, autoflush=False))
    await engine.dispose()
