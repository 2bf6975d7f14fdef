"""Structured logging for the cache store and its command line tools."""

import sys
import structlog
import logging
from pathlib import Path
from typing import List, Optional
from sqlcache.core.config import CacheSettings

# Loggers that only repeat what the cache already reports.
DRIVER_LOGGERS = ("aiosqlite", "sqlalchemy.engine", "sqlalchemy.pool")


def _log_handlers(settings: CacheSettings) -> List[logging.Handler]:
    # stderr, so a command's stdout carries only its result.
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    return handlers


def _processors(log_format: str) -> list:
    if log_format == "json":
        head = [structlog.stdlib.add_logger_name, structlog.processors.TimeStamper(fmt="iso")]
        renderer = structlog.processors.JSONRenderer()
    else:
        head = [structlog.processors.TimeStamper(fmt="%H:%M:%S")]
        renderer = structlog.dev.ConsoleRenderer(
            colors=False,
            pad_event=35,
            exception_formatter=structlog.dev.plain_traceback,
        )
    return [
        *head,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]


def configure_logging(settings: CacheSettings) -> None:
    """Route structlog through stdlib logging at the configured level and format."""
    level = logging.getLevelName(settings.log_level.upper())
    handlers = _log_handlers(settings)
    for handler in handlers:
        handler.setLevel(level)
    logging.basicConfig(level=level, handlers=handlers, format="%(message)s")

    if not settings.database_echo:
        for name in DRIVER_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=_processors(settings.log_format),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def log_cache_operation(logger: structlog.BoundLogger, operation: str,
                        key: str, hit: Optional[bool] = None, **kwargs) -> None:
    """Debug-level record of one store operation; ``hit`` is omitted when unknown."""
    if hit is not None:
        kwargs["cache_hit"] = hit
    logger.debug("Cache operation", operation=operation, cache_key=key, **kwargs)
