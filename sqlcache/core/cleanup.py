"""Opportunistic background deletion of expired cache rows.

Foreground operations call ``maybe_sweep`` after they finish. When more than the
configured interval has passed since the last sweep, a delete of everything
expired as of ``now`` is launched detached from the caller. Failures are logged
and dropped; the next foreground call past the interval triggers a new sweep.

The ``last_sweep`` gate is read and written without a lock. Two callers racing
past it both sweep, which is harmless since the delete is idempotent.
"""

import asyncio
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, Set

from sqlcache.core.logging import get_logger

logger = get_logger(__name__)

NEVER = datetime.min.replace(tzinfo=timezone.utc)


class ExpirySweeper(ABC):
    """Timestamp gate deciding when a sweep is due."""

    def __init__(self, interval: timedelta):
        self.interval = interval
        self.last_sweep: datetime = NEVER
        self.sweeps_started = 0

    def is_due(self, now: datetime) -> bool:
        return (now - self.last_sweep) > self.interval

    def maybe_sweep(self, now: datetime) -> bool:
        """Launch a sweep if one is due. Returns whether one was launched."""
        if not self.is_due(now):
            return False
        self.last_sweep = now
        self.sweeps_started += 1
        self._launch(now)
        return True

    @abstractmethod
    def _launch(self, now: datetime) -> None:
        """Start deleting rows expired as of ``now`` without waiting for it."""

    def _log_result(self, now: datetime, count: int) -> None:
        if count > 0:
            logger.info("Cleaned up expired cache entries", count=count, cutoff=now.isoformat())
        else:
            logger.debug("Expired cache sweep found nothing", cutoff=now.isoformat())


class AsyncExpirySweeper(ExpirySweeper):
    """Runs sweeps as asyncio tasks on the caller's event loop."""

    def __init__(self, interval: timedelta, delete_expired: Callable[[datetime], Awaitable[int]]):
        super().__init__(interval)
        self._delete_expired = delete_expired
        self._tasks: Set[asyncio.Task] = set()

    def _launch(self, now: datetime) -> None:
        task = asyncio.create_task(self._sweep(now))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _sweep(self, now: datetime) -> None:
        try:
            count = await self._delete_expired(now)
        except Exception as e:
            logger.error("An error occurred while deleting expired cache items", error=str(e))
            return
        self._log_result(now, count)

    async def wait_idle(self) -> None:
        """Wait for every in-flight sweep to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class ThreadedExpirySweeper(ExpirySweeper):
    """Runs sweeps on a small worker pool for blocking stores."""

    def __init__(self, interval: timedelta, delete_expired: Callable[[datetime], int],
                 max_workers: int = 2):
        super().__init__(interval)
        self._delete_expired = delete_expired
        self._executor: Optional[ThreadPoolExecutor] = None
        self._max_workers = max_workers
        self._futures: Set[Future] = set()

    def _launch(self, now: datetime) -> None:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._max_workers, thread_name_prefix="sqlcache-sweep"
            )
        future = self._executor.submit(self._sweep, now)
        self._futures.add(future)
        future.add_done_callback(self._futures.discard)

    def _sweep(self, now: datetime) -> None:
        try:
            count = self._delete_expired(now)
        except Exception as e:
            logger.error("An error occurred while deleting expired cache items", error=str(e))
            return
        self._log_result(now, count)

    def wait_idle(self, timeout: Optional[float] = None) -> None:
        wait(list(self._futures), timeout=timeout)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
