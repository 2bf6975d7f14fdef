"""Tests for the expiry sweeper gate and launchers."""

import asyncio
import threading
from datetime import datetime, timedelta, timezone

import pytest

from sqlcache.core.cleanup import NEVER, AsyncExpirySweeper, ExpirySweeper, ThreadedExpirySweeper

T0 = datetime(2013, 1, 1, 1, 0, 0, tzinfo=timezone.utc)
INTERVAL = timedelta(minutes=30)


class RecordingSweeper(ExpirySweeper):

    def __init__(self, interval):
        super().__init__(interval)
        self.launched = []

    def _launch(self, now):
        self.launched.append(now)


class TestGate:

    def test_first_call_sweeps(self):
        sweeper = RecordingSweeper(INTERVAL)

        assert sweeper.last_sweep == NEVER
        assert sweeper.maybe_sweep(T0) is True
        assert sweeper.launched == [T0]

    def test_interval_gates_sweeps(self):
        sweeper = RecordingSweeper(INTERVAL)

        sweeper.maybe_sweep(T0)
        assert sweeper.maybe_sweep(T0 + INTERVAL / 2) is False
        assert sweeper.maybe_sweep(T0 + INTERVAL * 2) is True

        assert sweeper.launched == [T0, T0 + INTERVAL * 2]
        assert sweeper.sweeps_started == 2

    def test_exact_interval_is_not_enough(self):
        sweeper = RecordingSweeper(INTERVAL)

        sweeper.maybe_sweep(T0)

        assert sweeper.maybe_sweep(T0 + INTERVAL) is False
        assert sweeper.maybe_sweep(T0 + INTERVAL + timedelta(microseconds=1)) is True

    def test_gate_needs_a_launcher(self):
        with pytest.raises(TypeError):
            ExpirySweeper(INTERVAL)


class TestAsyncSweeper:

    @pytest.mark.asyncio
    async def test_runs_detached(self):
        started = asyncio.Event()
        release = asyncio.Event()
        seen = []

        async def delete_expired(now):
            seen.append(now)
            started.set()
            await release.wait()
            return 3

        sweeper = AsyncExpirySweeper(INTERVAL, delete_expired)

        # Returns before the delete has even started.
        assert sweeper.maybe_sweep(T0) is True
        assert not started.is_set()

        await started.wait()
        release.set()
        await sweeper.wait_idle()

        assert seen == [T0]

    @pytest.mark.asyncio
    async def test_failure_is_swallowed(self):
        async def delete_expired(now):
            raise RuntimeError("store down")

        sweeper = AsyncExpirySweeper(INTERVAL, delete_expired)

        sweeper.maybe_sweep(T0)
        await sweeper.wait_idle()

        # A failed sweep is not retried until the interval passes again.
        assert sweeper.maybe_sweep(T0 + timedelta(seconds=1)) is False


class TestThreadedSweeper:

    def test_runs_on_worker_thread(self):
        threads = []

        def delete_expired(now):
            threads.append(threading.current_thread().name)
            return 0

        sweeper = ThreadedExpirySweeper(INTERVAL, delete_expired)
        try:
            sweeper.maybe_sweep(T0)
            sweeper.wait_idle()
        finally:
            sweeper.shutdown()

        assert len(threads) == 1
        assert threads[0].startswith("sqlcache-sweep")

    def test_failure_is_swallowed(self):
        def delete_expired(now):
            raise RuntimeError("store down")

        sweeper = ThreadedExpirySweeper(INTERVAL, delete_expired)
        try:
            sweeper.maybe_sweep(T0)
            sweeper.wait_idle()
        finally:
            sweeper.shutdown()

        assert sweeper.sweeps_started == 1
