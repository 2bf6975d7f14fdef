#!/usr/bin/env python3
"""
Create the cache table and its expiry index.

Usage:
  sqlcache-create-table --database-url sqlite:///./cache.db
  sqlcache-create-table --database-url postgresql://user@host/db --table-name sessions --schema-name cache

Safe to re-run: existing tables and indexes are left untouched.
"""
import argparse
import sys
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import make_url

from sqlcache.core.config import CacheSettings
from sqlcache.core.logging import configure_logging, get_logger
from sqlcache.core.queries import CacheQueries

logger = get_logger(__name__)


def create_cache_table(database_url: str, table_name: str = "cache_entries",
                       schema_name: Optional[str] = None) -> bool:
    """Create table and index if absent. Returns True when the table was created."""
    url = make_url(database_url)
    # Provisioning is one-shot, so always use the blocking driver.
    url = url.set(drivername=url.get_backend_name())

    queries = CacheQueries(table_name, schema_name)
    engine = create_engine(url)
    try:
        existed = inspect(engine).has_table(table_name, schema=schema_name)
        with engine.begin() as conn:
            queries.table.metadata.create_all(conn, checkfirst=True)
    finally:
        engine.dispose()

    if existed:
        logger.info("Cache table already exists", table=table_name, schema=schema_name)
    else:
        logger.info("Cache table created", table=table_name, schema=schema_name)
    return not existed


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Create the SQL cache table and expiry index")
    parser.add_argument("--database-url", required=True, help="SQLAlchemy database URL")
    parser.add_argument("--table-name", default="cache_entries", help="Cache table name")
    parser.add_argument("--schema-name", default=None, help="Optional schema/namespace")
    parser.add_argument("--log-level", default=None, help="Log level (defaults to SQLCACHE_LOG_LEVEL or INFO)")
    args = parser.parse_args(argv)

    overrides = {"log_level": args.log_level} if args.log_level else {}
    try:
        settings = CacheSettings(
            database_url=args.database_url,
            table_name=args.table_name,
            schema_name=args.schema_name,
            **overrides,
        )
    except ValidationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    configure_logging(settings)

    try:
        created = create_cache_table(settings.database_url, settings.table_name, settings.schema_name)
    except Exception as e:
        logger.error("Failed to create cache table", table=settings.table_name, error=str(e))
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    print("created" if created else "exists")
    return 0


if __name__ == "__main__":
    sys.exit(main())
