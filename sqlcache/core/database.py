"""Row store engines for the cache table (async and blocking)."""

import logging
from contextlib import asynccontextmanager, contextmanager
from typing import Any, Dict, Optional
from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from sqlcache.core.config import CacheSettings
from sqlcache.core.exceptions import StoreUnavailableError
from sqlcache.core.logging import get_logger
from sqlcache.core.queries import CacheQueries

logger = get_logger(__name__)


@contextmanager
def translate_store_errors(operation: str):
    """Re-raise transport-level driver failures as StoreUnavailableError."""
    try:
        yield
    except (OperationalError, InterfaceError) as e:
        raise StoreUnavailableError(f"Cache store unavailable during {operation}: {e.orig or e}") from e


def _engine_options(settings: CacheSettings) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.database_echo}
    if not settings.is_sqlite:
        options["pool_size"] = settings.database_pool_size
        options["max_overflow"] = settings.database_max_overflow
        options["pool_pre_ping"] = True
    return options


def _quiet_driver_loggers() -> None:
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.dialects").setLevel(logging.WARNING)


class Database:
    """Async engine holder for the cache table."""

    def __init__(self, settings: CacheSettings, queries: Optional[CacheQueries] = None):
        self.settings = settings
        self.queries = queries or CacheQueries(settings.table_name, settings.schema_name)
        self.engine: Optional[AsyncEngine] = None

    async def startup(self):
        """Create the engine and, if configured, the cache table."""
        if self.engine is not None:
            return
        _quiet_driver_loggers()
        try:
            self.engine = create_async_engine(self.settings.database_url, **_engine_options(self.settings))

            if self.settings.create_table_on_startup:
                await self.create_schema()

            logger.info("Cache database initialized", table=self.settings.table_name)

        except Exception as e:
            logger.error("Cache database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            logger.info("Cache database connections closed")

    async def create_schema(self):
        """Create the cache table and its expiry index if missing."""
        if self.engine is None:
            await self.startup()
        async with self.engine.begin() as conn:
            await conn.run_sync(self.queries.table.metadata.create_all, checkfirst=True)

    @asynccontextmanager
    async def connect(self):
        """Scoped connection; rolled back if the block raises."""
        if self.engine is None:
            await self.startup()

        async with self.engine.connect() as conn:
            try:
                yield conn
            except Exception:
                await conn.rollback()
                raise


class SyncDatabase:
    """Blocking engine holder for the cache table."""

    def __init__(self, settings: CacheSettings, queries: Optional[CacheQueries] = None):
        self.settings = settings
        self.queries = queries or CacheQueries(settings.table_name, settings.schema_name)
        self.engine: Optional[Engine] = None

    def startup(self):
        if self.engine is not None:
            return
        _quiet_driver_loggers()
        try:
            self.engine = create_engine(self.settings.sync_database_url, **_engine_options(self.settings))

            if self.settings.create_table_on_startup:
                self.create_schema()

            logger.info("Cache database initialized", table=self.settings.table_name)

        except Exception as e:
            logger.error("Cache database startup failed", error=str(e))
            raise

    def shutdown(self):
        if self.engine:
            self.engine.dispose()
            self.engine = None
            logger.info("Cache database connections closed")

    def create_schema(self):
        if self.engine is None:
            self.startup()
        with self.engine.begin() as conn:
            self.queries.table.metadata.create_all(conn, checkfirst=True)

    @contextmanager
    def connect(self):
        if self.engine is None:
            self.startup()

        with self.engine.connect() as conn:
            try:
                yield conn
            except Exception:
                conn.rollback()
                raise
