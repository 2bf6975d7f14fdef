"""Statement templates for the cache table.

Everything is built once per store against the configured table; executions
only supply bind values.
"""

from typing import Any, Dict, Iterable, Optional
from sqlalchemy import BigInteger, LargeBinary, String, bindparam, delete, false, insert, select, update
from sqlalchemy.schema import CreateIndex, CreateTable

from sqlcache.models.cache import CacheRow, UTCDateTime, build_cache_table

# Bind names must differ from column keys, SQLAlchemy reserves those in SET/VALUES.
P_ID = "item_id"
P_VALUE = "item_value"
P_EXPIRES_AT = "expires_at"
P_SLIDING_TICKS = "sliding_ticks"
P_ABSOLUTE = "absolute_at"
P_UTC_NOW = "utc_now"
P_OLD_EXPIRES_AT = "old_expires_at"


class CacheQueries:
    """Parameterized statements for one cache table."""

    def __init__(self, table_name: str, schema_name: Optional[str] = None):
        self.table = build_cache_table(table_name, schema_name)
        t = self.table

        item_id = bindparam(P_ID, type_=String())
        item_value = bindparam(P_VALUE, type_=LargeBinary())
        expires_at = bindparam(P_EXPIRES_AT, type_=UTCDateTime())
        sliding_ticks = bindparam(P_SLIDING_TICKS, type_=BigInteger())
        absolute_at = bindparam(P_ABSOLUTE, type_=UTCDateTime())
        utc_now = bindparam(P_UTC_NOW, type_=UTCDateTime())
        old_expires_at = bindparam(P_OLD_EXPIRES_AT, type_=UTCDateTime())

        self.columns = (
            t.c.id,
            t.c.value,
            t.c.expires_at_time,
            t.c.sliding_expiration_ticks,
            t.c.absolute_expiration,
        )

        # Returns no rows; used by connect() to learn the result layout.
        self.get_table_schema = select(*self.columns).where(false())

        self.get_cache_item = select(*self.columns).where(
            t.c.id == item_id,
            t.c.expires_at_time >= utc_now,
        )

        self.add_cache_item = insert(t).values(
            id=item_id,
            value=item_value,
            expires_at_time=expires_at,
            sliding_expiration_ticks=sliding_ticks,
            absolute_expiration=absolute_at,
        )

        self.update_cache_item = (
            update(t)
            .where(t.c.id == item_id)
            .values(
                value=item_value,
                expires_at_time=expires_at,
                sliding_expiration_ticks=sliding_ticks,
                absolute_expiration=absolute_at,
            )
        )

        # Matches only the row as it was read; a concurrent overwrite leaves it untouched.
        self.update_cache_item_expiration = (
            update(t)
            .where(t.c.id == item_id, t.c.expires_at_time == old_expires_at)
            .values(expires_at_time=expires_at)
        )

        self.delete_cache_item = delete(t).where(t.c.id == item_id)

        self.delete_expired_cache_items = delete(t).where(t.c.expires_at_time < utc_now)

    @property
    def create_table(self) -> CreateTable:
        return CreateTable(self.table)

    @property
    def create_expiration_index(self) -> CreateIndex:
        (index,) = self.table.indexes
        return CreateIndex(index)


class ColumnOrdinals:
    """Memoized column name -> result position map.

    Primed from the layout connect() observes. Until then, or if the observed
    layout is missing a column, reads fall back to name-based access.
    """

    def __init__(self, names: Iterable[str]):
        self.names = tuple(names)
        self._positions: Optional[Dict[str, int]] = None

    @property
    def primed(self) -> bool:
        return self._positions is not None

    def prime(self, keys: Iterable[str]) -> bool:
        observed = {str(k).lower(): i for i, k in enumerate(keys)}
        positions = {}
        for name in self.names:
            if name.lower() not in observed:
                self._positions = None
                return False
            positions[name] = observed[name.lower()]
        self._positions = positions
        return True

    def read(self, row: Any, name: str) -> Any:
        if self._positions is not None:
            return row[self._positions[name]]
        return row._mapping[name]

    def decode(self, row: Any) -> CacheRow:
        return CacheRow(**{name: self.read(row, name) for name in self.names})
