"""Persisted shape of a cache row.

The table name is configurable, so the table itself is built with SQLAlchemy
Core per store instance while ``CacheRow`` stays a plain (non-table) SQLModel.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from sqlalchemy import BigInteger, Column, DateTime, Index, LargeBinary, MetaData, String, Table
from sqlalchemy.types import TypeDecorator
from sqlmodel import SQLModel

ID_MAX_LENGTH = 100

# .NET-compatible duration unit: one tick is 100 nanoseconds.
TICKS_PER_MICROSECOND = 10
TICKS_PER_SECOND = 10_000_000


class UTCDateTime(TypeDecorator):
    """Offset-aware timestamp stored as UTC.

    SQLite keeps no offset, so values are bound as naive UTC there and read
    back with the UTC offset re-attached.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime bound to a UTC timestamp column")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def timedelta_to_ticks(value: timedelta) -> int:
    return (value.days * 86_400 + value.seconds) * TICKS_PER_SECOND + value.microseconds * TICKS_PER_MICROSECOND


def ticks_to_timedelta(ticks: int) -> timedelta:
    return timedelta(microseconds=ticks // TICKS_PER_MICROSECOND)


def build_cache_table(table_name: str, schema_name: Optional[str] = None) -> Table:
    """Cache table bound to its own MetaData so several stores can coexist."""
    metadata = MetaData(schema=schema_name)
    table = Table(
        table_name,
        metadata,
        Column("id", String(ID_MAX_LENGTH), primary_key=True),
        Column("value", LargeBinary, nullable=False),
        Column("expires_at_time", UTCDateTime(), nullable=False),
        Column("sliding_expiration_ticks", BigInteger, nullable=True),
        Column("absolute_expiration", UTCDateTime(), nullable=True),
    )
    Index(f"ix_{table_name}_expires_at_time", table.c.expires_at_time)
    return table


class CacheRow(SQLModel):
    """One decoded cache row."""

    id: str
    value: bytes
    expires_at_time: datetime
    sliding_expiration_ticks: Optional[int] = None
    absolute_expiration: Optional[datetime] = None

    @property
    def sliding_expiration(self) -> Optional[timedelta]:
        if self.sliding_expiration_ticks is None:
            return None
        return ticks_to_timedelta(self.sliding_expiration_ticks)
