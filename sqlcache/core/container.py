"""Dependency injection container for the cache services."""

from dependency_injector import containers, providers

from sqlcache.core.cache import SqlCache, SyncSqlCache
from sqlcache.core.clock import SystemClock
from sqlcache.core.config import CacheSettings
from sqlcache.core.database import Database, SyncDatabase
from sqlcache.core.expiration import get_policy
from sqlcache.core.queries import CacheQueries


class Container(containers.DeclarativeContainer):
    """Cache dependency injection container."""

    settings = providers.Singleton(
        CacheSettings,
    )

    clock = providers.Singleton(
        SystemClock
    )

    # Statements are built once and shared by both engines
    queries = providers.Singleton(
        CacheQueries,
        table_name=settings.provided.table_name,
        schema_name=settings.provided.schema_name,
    )

    policy = providers.Callable(
        get_policy,
        settings.provided.expiration_policy,
    )

    database = providers.Singleton(
        Database,
        settings=settings,
        queries=queries
    )

    sync_database = providers.Singleton(
        SyncDatabase,
        settings=settings,
        queries=queries
    )

    cache = providers.Singleton(
        SqlCache,
        settings=settings,
        database=database,
        clock=clock,
        policy=policy
    )

    sync_cache = providers.Singleton(
        SyncSqlCache,
        settings=settings,
        database=sync_database,
        clock=clock,
        policy=policy
    )


# Global container instance
container = Container()
