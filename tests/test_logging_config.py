# tests/test_logging_config.py
"""Unit tests for logging configuration."""

import logging

import pytest

from pgcontainer import logging_config
from pgcontainer.logging_config import (
    DisplayFilter,
    configure_logging,
    is_configured,
    log_display,
)


@pytest.fixture
def reset_logging():
    """Remove handlers installed by configure_logging after each test."""
    yield
    root_logger = logging.getLogger()
    for handler in (logging_config._console_handler, logging_config._file_handler):
        if handler is not None:
            root_logger.removeHandler(handler)
            handler.close()
    logging_config._console_handler = None
    logging_config._file_handler = None
    logging_config._configured = False


def _record(level: int, display: bool | None = None) -> logging.LogRecord:
    record = logging.LogRecord("pgcontainer", level, __file__, 1, "msg", None, None)
    if display is not None:
        record.display = display
    return record


class TestDisplayFilter:
    """Tests for DisplayFilter."""

    def test_verbose_passes_everything(self):
        display_filter = DisplayFilter(console_globally_enabled=True)

        assert display_filter.filter(_record(logging.DEBUG))

    def test_quiet_blocks_plain_records(self):
        display_filter = DisplayFilter(console_globally_enabled=False)

        assert not display_filter.filter(_record(logging.ERROR))
        assert not display_filter.filter(_record(logging.INFO, display=False))

    def test_quiet_passes_display_records_above_min_level(self):
        display_filter = DisplayFilter(display_min_level=logging.INFO)

        assert display_filter.filter(_record(logging.INFO, display=True))
        assert not display_filter.filter(_record(logging.DEBUG, display=True))


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_console_only(self, reset_logging):
        assert configure_logging() is None
        assert is_configured()
        assert logging_config._console_handler in logging.getLogger().handlers
        assert logging.getLogger("docker").level == logging.WARNING

    def test_file_handler(self, reset_logging, tmp_path):
        log_file = tmp_path / "logs" / "pgcontainer.log"

        path = configure_logging(config={"file_path": str(log_file)})
        logging.getLogger("pgcontainer.test").info("provisioned")
        logging_config._file_handler.flush()

        assert path == log_file
        assert "provisioned" in log_file.read_text()

    def test_second_call_is_noop_unless_forced(self, reset_logging):
        configure_logging()
        first = logging_config._console_handler

        configure_logging()
        assert logging_config._console_handler is first

        configure_logging(force_reconfigure=True)
        assert logging_config._console_handler is not first
        assert first not in logging.getLogger().handlers

    def test_component_override(self, reset_logging):
        configure_logging(config={"components": {"psycopg": "DEBUG"}})

        assert logging.getLogger("psycopg").level == logging.DEBUG
        assert logging.getLogger("urllib3").level == logging.WARNING


def test_log_display_sets_flag(caplog):
    logger = logging.getLogger("pgcontainer.test")

    with caplog.at_level(logging.INFO, logger="pgcontainer.test"):
        log_display(logger, logging.INFO, "ready on %d", 5432, extra={"port": 5432})

    record = caplog.records[-1]
    assert record.display is True
    assert record.port == 5432
    assert record.getMessage() == "ready on 5432"
