"""Injectable UTC time sources."""

from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


class Clock(Protocol):
    def utc_now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock, always offset-aware UTC."""

    def utc_now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """Clock that only moves when told to. Used to drive expiration in tests."""

    DEFAULT_START = datetime(2013, 1, 1, 1, 0, 0, tzinfo=timezone.utc)

    def __init__(self, start: Optional[datetime] = None):
        self._now = self._check(start or self.DEFAULT_START)

    def utc_now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> "ManualClock":
        self._now = self._now + delta
        return self

    def set(self, value: datetime) -> "ManualClock":
        self._now = self._check(value)
        return self

    @staticmethod
    def _check(value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError("ManualClock requires an offset-aware datetime")
        return value.astimezone(timezone.utc)
