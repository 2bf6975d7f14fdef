"""SQL-table backed distributed cache with sliding and absolute expiration."""

from sqlcache.core.cache import SqlCache, SyncSqlCache
from sqlcache.core.clock import ManualClock, SystemClock
from sqlcache.core.config import CacheSettings
from sqlcache.core.exceptions import (
    CacheError,
    ConflictError,
    InvalidExpirationError,
    MissingExpirationPolicyError,
    StoreUnavailableError,
)
from sqlcache.core.expiration import CACHE_POLICY, SESSION_POLICY, CacheEntryOptions, ExpirationPolicy

__version__ = "0.1.0"

__all__ = [
    "SqlCache",
    "SyncSqlCache",
    "CacheSettings",
    "CacheEntryOptions",
    "ExpirationPolicy",
    "CACHE_POLICY",
    "SESSION_POLICY",
    "SystemClock",
    "ManualClock",
    "CacheError",
    "ConflictError",
    "InvalidExpirationError",
    "MissingExpirationPolicyError",
    "StoreUnavailableError",
]
