"""Pytest configuration and fixtures for sqlcache tests."""

from datetime import timedelta
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy import select

from sqlcache.core.cache import SqlCache, SyncSqlCache
from sqlcache.core.clock import ManualClock
from sqlcache.core.config import CacheSettings

SWEEP_INTERVAL = timedelta(minutes=5)


def make_settings(db_path: Path, **overrides) -> CacheSettings:
    values = {
        "database_url": f"sqlite+aiosqlite:///{db_path}",
        "create_table_on_startup": True,
        "expired_items_deletion_interval": SWEEP_INTERVAL,
        "log_format": "console",
    }
    values.update(overrides)
    return CacheSettings(_env_file=None, **values)


@pytest.fixture
def clock() -> ManualClock:
    """Manual clock starting at 2013-01-01T01:00Z."""
    return ManualClock()


@pytest.fixture
def settings(tmp_path: Path) -> CacheSettings:
    return make_settings(tmp_path / "cache.db")


@pytest_asyncio.fixture
async def cache(settings, clock):
    """Async store over a fresh SQLite file."""
    store = SqlCache(settings, clock=clock)
    await store.startup()
    yield store
    await store.shutdown()


@pytest.fixture
def sync_cache(settings, clock):
    """Blocking store over a fresh SQLite file."""
    store = SyncSqlCache(settings, clock=clock)
    store.startup()
    yield store
    store.shutdown()


async def fetch_row(store: SqlCache, key: str):
    """Raw row for ``key`` regardless of expiry."""
    table = store.queries.table
    async with store.database.connect() as conn:
        result = await conn.execute(select(table).where(table.c.id == key))
        return result.first()


async def count_rows(store: SqlCache) -> int:
    table = store.queries.table
    async with store.database.connect() as conn:
        result = await conn.execute(select(table.c.id))
        return len(result.all())


def fetch_row_sync(store: SyncSqlCache, key: str):
    table = store.queries.table
    with store.database.connect() as conn:
        return conn.execute(select(table).where(table.c.id == key)).first()
