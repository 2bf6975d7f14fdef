"""Distributed cache over a single SQL table.

Each row carries an authoritative ``expires_at_time``. Reads treat anything past
it as absent, reads of sliding items push it forward once the remaining window
drops below one sliding period, and a gated background sweep deletes what has
expired. Writes are an UPDATE followed by an INSERT when no row matched.

Concurrency relies on the store's single-statement atomicity; no in-process
locks guard rows. Losing a read-time extension to a concurrent remove or
overwrite is fine because the value was already read.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Union
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from sqlcache.core.cleanup import AsyncExpirySweeper, ThreadedExpirySweeper
from sqlcache.core.clock import Clock, SystemClock
from sqlcache.core.config import CacheSettings
from sqlcache.core.database import Database, SyncDatabase, translate_store_errors
from sqlcache.core.exceptions import ConflictError
from sqlcache.core.expiration import CacheEntryOptions, ExpirationInfo, ExpirationPolicy, get_policy
from sqlcache.core.logging import get_logger, log_cache_operation
from sqlcache.core.queries import (
    P_ABSOLUTE,
    P_EXPIRES_AT,
    P_ID,
    P_OLD_EXPIRES_AT,
    P_SLIDING_TICKS,
    P_UTC_NOW,
    P_VALUE,
    CacheQueries,
    ColumnOrdinals,
)
from sqlcache.models.cache import CacheRow, timedelta_to_ticks

logger = get_logger(__name__)

BytesLike = Union[bytes, bytearray, memoryview]


class _SqlCacheBase:
    """State and decisions shared by the async and blocking stores."""

    def __init__(
        self,
        settings: CacheSettings,
        queries: CacheQueries,
        clock: Optional[Clock] = None,
        policy: Optional[ExpirationPolicy] = None,
    ):
        self.settings = settings
        self.queries = queries
        self.clock = clock or SystemClock()
        self.policy = policy or get_policy(settings.expiration_policy)
        self.ordinals = ColumnOrdinals(column.name for column in queries.columns)

    @staticmethod
    def _check_key(key: str) -> None:
        if not isinstance(key, str) or not key:
            raise ValueError("Cache key must be a non-empty string")

    @staticmethod
    def _check_value(value: BytesLike) -> bytes:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise TypeError(f"Cache value must be bytes, got {type(value).__name__}")
        return bytes(value)

    @staticmethod
    def _entry_options(
        options: Optional[CacheEntryOptions],
        sliding_expiration: Optional[timedelta],
        absolute_expiration: Optional[datetime],
        absolute_expiration_relative_to_now: Optional[timedelta],
    ) -> CacheEntryOptions:
        if options is not None:
            return options
        return CacheEntryOptions(
            sliding_expiration=sliding_expiration,
            absolute_expiration=absolute_expiration,
            absolute_expiration_relative_to_now=absolute_expiration_relative_to_now,
        )

    @staticmethod
    def _item_params(key: str, value: bytes, info: ExpirationInfo) -> Dict[str, Any]:
        sliding = info.sliding_expiration
        return {
            P_ID: key,
            P_VALUE: value,
            P_EXPIRES_AT: info.expires_at_time,
            P_SLIDING_TICKS: timedelta_to_ticks(sliding) if sliding is not None else None,
            P_ABSOLUTE: info.absolute_expiration,
        }

    def _extended_expiry(self, row: CacheRow, now: datetime) -> Optional[datetime]:
        """New expiry for a read of ``row`` at ``now``, or None to leave it alone.

        Only sliding items are extended, and only once inside the last sliding
        window before expiry.
        """
        sliding = row.sliding_expiration
        if sliding is None:
            return None
        if now < row.expires_at_time - sliding:
            return None

        new_expiry = self.policy.expiration_time(now, sliding, row.absolute_expiration)
        if new_expiry <= row.expires_at_time:
            return None
        return new_expiry

    def _scan_for_expired_items(self) -> None:
        self.sweeper.maybe_sweep(self.clock.utc_now())


class SqlCache(_SqlCacheBase):
    """Async cache store backed by an SQLAlchemy AsyncEngine."""

    def __init__(
        self,
        settings: CacheSettings,
        database: Optional[Database] = None,
        clock: Optional[Clock] = None,
        policy: Optional[ExpirationPolicy] = None,
    ):
        self.database = database or Database(settings)
        super().__init__(settings, self.database.queries, clock, policy)
        self.sweeper = AsyncExpirySweeper(
            settings.expired_items_deletion_interval, self.delete_expired_items
        )

    async def startup(self):
        await self.database.startup()

    async def shutdown(self):
        """Let running sweeps finish, then close connections."""
        await self.sweeper.wait_idle()
        await self.database.shutdown()

    async def connect(self) -> bool:
        """Probe the cache table and prime column ordinals. Never raises."""
        try:
            async with self.database.connect() as conn:
                result = await conn.execute(self.queries.get_table_schema)
                keys = list(result.keys())
        except Exception as e:
            logger.warning("Cache store connect probe failed",
                           table=self.settings.table_name, error=str(e))
            return False

        primed = self.ordinals.prime(keys)
        logger.info("Connected to cache store", table=self.settings.table_name, ordinals_primed=primed)
        return True

    async def get(self, key: str) -> Optional[bytes]:
        """Value for ``key``, or None if absent or expired."""
        self._check_key(key)
        value = await self._get_and_extend(key)
        log_cache_operation(logger, "get", key, hit=value is not None)
        self._scan_for_expired_items()
        return value

    async def refresh(self, key: str) -> None:
        """Extend a sliding item's lifetime as a read would, without returning it."""
        self._check_key(key)
        value = await self._get_and_extend(key)
        log_cache_operation(logger, "refresh", key, hit=value is not None)
        self._scan_for_expired_items()

    async def set(
        self,
        key: str,
        value: BytesLike,
        options: Optional[CacheEntryOptions] = None,
        *,
        sliding_expiration: Optional[timedelta] = None,
        absolute_expiration: Optional[datetime] = None,
        absolute_expiration_relative_to_now: Optional[timedelta] = None,
    ) -> None:
        """Store ``value`` under ``key``, replacing value and expiration inputs.

        Raises:
            InvalidExpirationError, MissingExpirationPolicyError: before any write.
            ConflictError: a concurrent insert of the same key won and then vanished.
            StoreUnavailableError: the row store could not be reached.
        """
        self._check_key(key)
        value = self._check_value(value)
        options = self._entry_options(
            options, sliding_expiration, absolute_expiration, absolute_expiration_relative_to_now
        )
        info = self.policy.from_options(self.clock.utc_now(), options)
        params = self._item_params(key, value, info)

        with translate_store_errors("set"):
            async with self.database.connect() as conn:
                outcome = await self._upsert(conn, key, params)

        log_cache_operation(logger, "set", key, outcome=outcome,
                            expires_at=info.expires_at_time.isoformat())
        self._scan_for_expired_items()

    async def remove(self, key: str) -> None:
        self._check_key(key)
        with translate_store_errors("remove"):
            async with self.database.connect() as conn:
                result = await conn.execute(self.queries.delete_cache_item, {P_ID: key})
                deleted = result.rowcount > 0
                await conn.commit()

        log_cache_operation(logger, "remove", key, deleted=deleted)
        self._scan_for_expired_items()

    async def delete_expired_items(self, now: datetime) -> int:
        """Delete every row expired as of ``now``. Returns the row count."""
        async with self.database.connect() as conn:
            result = await conn.execute(self.queries.delete_expired_cache_items, {P_UTC_NOW: now})
            count = result.rowcount
            await conn.commit()
            return count

    async def _get_and_extend(self, key: str) -> Optional[bytes]:
        now = self.clock.utc_now()
        with translate_store_errors("get"):
            async with self.database.connect() as conn:
                result = await conn.execute(self.queries.get_cache_item, {P_ID: key, P_UTC_NOW: now})
                raw = result.first()
                if raw is None:
                    return None
                row = self.ordinals.decode(raw)

                new_expiry = self._extended_expiry(row, now)
                if new_expiry is not None:
                    try:
                        await conn.execute(
                            self.queries.update_cache_item_expiration,
                            {P_ID: key, P_EXPIRES_AT: new_expiry, P_OLD_EXPIRES_AT: row.expires_at_time},
                        )
                        await conn.commit()
                    except SQLAlchemyError as e:
                        logger.warning("Failed to extend cache item expiration", cache_key=key, error=str(e))
                        try:
                            await conn.rollback()
                        except SQLAlchemyError as rollback_error:
                            logger.warning("Rollback after failed extension also failed",
                                           cache_key=key, error=str(rollback_error))

        return row.value

    async def _upsert(self, conn, key: str, params: Dict[str, Any]) -> str:
        result = await conn.execute(self.queries.update_cache_item, params)
        updated = result.rowcount > 0
        await conn.commit()
        if updated:
            return "updated"

        try:
            await conn.execute(self.queries.add_cache_item, params)
            await conn.commit()
            return "inserted"
        except IntegrityError:
            await conn.rollback()
            logger.debug("Concurrent insert detected, retrying as update", cache_key=key)

        result = await conn.execute(self.queries.update_cache_item, params)
        updated = result.rowcount > 0
        await conn.commit()
        if updated:
            return "updated"
        raise ConflictError(key)


class SyncSqlCache(_SqlCacheBase):
    """Blocking cache store backed by an SQLAlchemy Engine."""

    def __init__(
        self,
        settings: CacheSettings,
        database: Optional[SyncDatabase] = None,
        clock: Optional[Clock] = None,
        policy: Optional[ExpirationPolicy] = None,
    ):
        self.database = database or SyncDatabase(settings)
        super().__init__(settings, self.database.queries, clock, policy)
        self.sweeper = ThreadedExpirySweeper(
            settings.expired_items_deletion_interval, self.delete_expired_items
        )

    def startup(self):
        self.database.startup()

    def shutdown(self):
        self.sweeper.shutdown()
        self.database.shutdown()

    def connect(self) -> bool:
        try:
            with self.database.connect() as conn:
                result = conn.execute(self.queries.get_table_schema)
                keys = list(result.keys())
                result.close()
        except Exception as e:
            logger.warning("Cache store connect probe failed",
                           table=self.settings.table_name, error=str(e))
            return False

        primed = self.ordinals.prime(keys)
        logger.info("Connected to cache store", table=self.settings.table_name, ordinals_primed=primed)
        return True

    def get(self, key: str) -> Optional[bytes]:
        self._check_key(key)
        value = self._get_and_extend(key)
        log_cache_operation(logger, "get", key, hit=value is not None)
        self._scan_for_expired_items()
        return value

    def refresh(self, key: str) -> None:
        self._check_key(key)
        value = self._get_and_extend(key)
        log_cache_operation(logger, "refresh", key, hit=value is not None)
        self._scan_for_expired_items()

    def set(
        self,
        key: str,
        value: BytesLike,
        options: Optional[CacheEntryOptions] = None,
        *,
        sliding_expiration: Optional[timedelta] = None,
        absolute_expiration: Optional[datetime] = None,
        absolute_expiration_relative_to_now: Optional[timedelta] = None,
    ) -> None:
        self._check_key(key)
        value = self._check_value(value)
        options = self._entry_options(
            options, sliding_expiration, absolute_expiration, absolute_expiration_relative_to_now
        )
        info = self.policy.from_options(self.clock.utc_now(), options)
        params = self._item_params(key, value, info)

        with translate_store_errors("set"):
            with self.database.connect() as conn:
                outcome = self._upsert(conn, key, params)

        log_cache_operation(logger, "set", key, outcome=outcome,
                            expires_at=info.expires_at_time.isoformat())
        self._scan_for_expired_items()

    def remove(self, key: str) -> None:
        self._check_key(key)
        with translate_store_errors("remove"):
            with self.database.connect() as conn:
                result = conn.execute(self.queries.delete_cache_item, {P_ID: key})
                deleted = result.rowcount > 0
                conn.commit()

        log_cache_operation(logger, "remove", key, deleted=deleted)
        self._scan_for_expired_items()

    def delete_expired_items(self, now: datetime) -> int:
        with self.database.connect() as conn:
            result = conn.execute(self.queries.delete_expired_cache_items, {P_UTC_NOW: now})
            count = result.rowcount
            conn.commit()
            return count

    def _get_and_extend(self, key: str) -> Optional[bytes]:
        now = self.clock.utc_now()
        with translate_store_errors("get"):
            with self.database.connect() as conn:
                raw = conn.execute(self.queries.get_cache_item, {P_ID: key, P_UTC_NOW: now}).first()
                if raw is None:
                    return None
                row = self.ordinals.decode(raw)

                new_expiry = self._extended_expiry(row, now)
                if new_expiry is not None:
                    try:
                        conn.execute(
                            self.queries.update_cache_item_expiration,
                            {P_ID: key, P_EXPIRES_AT: new_expiry, P_OLD_EXPIRES_AT: row.expires_at_time},
                        )
                        conn.commit()
                    except SQLAlchemyError as e:
                        logger.warning("Failed to extend cache item expiration", cache_key=key, error=str(e))
                        try:
                            conn.rollback()
                        except SQLAlchemyError as rollback_error:
                            logger.warning("Rollback after failed extension also failed",
                                           cache_key=key, error=str(rollback_error))

        return row.value

    def _upsert(self, conn, key: str, params: Dict[str, Any]) -> str:
        result = conn.execute(self.queries.update_cache_item, params)
        updated = result.rowcount > 0
        conn.commit()
        if updated:
            return "updated"

        try:
            conn.execute(self.queries.add_cache_item, params)
            conn.commit()
            return "inserted"
        except IntegrityError:
            conn.rollback()
            logger.debug("Concurrent insert detected, retrying as update", cache_key=key)

        result = conn.execute(self.queries.update_cache_item, params)
        updated = result.rowcount > 0
        conn.commit()
        if updated:
            return "updated"
        raise ConflictError(key)
