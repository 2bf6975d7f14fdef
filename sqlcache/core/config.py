"""Environment-driven configuration with Pydantic v2."""

from datetime import timedelta
from typing import Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings
from sqlalchemy.engine import make_url

# Sweeping more often than this only adds load on the row store.
MIN_DELETION_INTERVAL = timedelta(minutes=5)


class CacheSettings(BaseSettings):
    """Cache settings driven by SQLCACHE_* environment variables."""

    # Database Configuration
    database_url: str
    database_echo: bool = False
    database_pool_size: int = Field(default=20, ge=5, le=100)
    database_max_overflow: int = Field(default=30, ge=10, le=100)

    # Cache Table
    schema_name: Optional[str] = None
    table_name: str = Field(default="cache_entries", min_length=1, max_length=128)
    create_table_on_startup: bool = False

    # Expiration
    expiration_policy: Literal["cache", "session"] = "cache"
    expired_items_deletion_interval: timedelta = timedelta(minutes=30)

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"
    log_file: Optional[str] = None

    @field_validator("expired_items_deletion_interval")
    @classmethod
    def validate_deletion_interval(cls, v):
        """Refuse sweep intervals below the floor."""
        if v < MIN_DELETION_INTERVAL:
            raise ValueError(
                f"expired_items_deletion_interval must be at least {MIN_DELETION_INTERVAL}"
            )
        return v

    @field_validator("table_name", "schema_name")
    @classmethod
    def strip_identifier(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("identifier must not be blank")
        return v

    @property
    def is_sqlite(self) -> bool:
        return make_url(self.database_url).get_backend_name() == "sqlite"

    @property
    def sync_database_url(self) -> str:
        """Blocking-driver form of database_url (sqlite+aiosqlite -> sqlite)."""
        url = make_url(self.database_url)
        return url.set(drivername=url.get_backend_name()).render_as_string(hide_password=False)

    model_config = {
        "env_prefix": "SQLCACHE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
