"""Tests for structured logging helpers."""

import logging

import structlog
from structlog.testing import capture_logs

from sqlcache.core.logging import (
    _log_handlers,
    _processors,
    configure_logging,
    get_logger,
    log_cache_operation,
)

from conftest import make_settings


def test_log_cache_operation_fields():
    logger = get_logger("test")

    with capture_logs() as logs:
        log_cache_operation(logger, "get", "key", hit=False, extra="x")

    assert logs == [{
        "event": "Cache operation",
        "log_level": "debug",
        "operation": "get",
        "cache_key": "key",
        "cache_hit": False,
        "extra": "x",
    }]


def test_hit_omitted_when_unknown():
    with capture_logs() as logs:
        log_cache_operation(get_logger("test"), "remove", "key", deleted=True)

    assert "cache_hit" not in logs[0]


def test_log_file_adds_handler(tmp_path):
    log_file = tmp_path / "logs" / "cache.log"
    settings = make_settings(tmp_path / "cache.db", log_file=str(log_file))

    handlers = _log_handlers(settings)
    try:
        assert len(handlers) == 2
        assert isinstance(handlers[1], logging.FileHandler)
        assert log_file.parent.is_dir()
    finally:
        for handler in handlers:
            handler.close()


def test_renderer_follows_format():
    assert isinstance(_processors("json")[-1], structlog.processors.JSONRenderer)
    assert isinstance(_processors("console")[-1], structlog.dev.ConsoleRenderer)


def test_configure_logging(tmp_path):
    settings = make_settings(tmp_path / "cache.db", log_level="DEBUG", log_format="json")
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    try:
        configure_logging(settings)
        assert structlog.is_configured()
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
    finally:
        root.handlers[:] = handlers
        root.setLevel(level)
        structlog.reset_defaults()
