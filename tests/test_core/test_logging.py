"""Tests for logging setup."""

import json
import logging

import pytest

from crmpilot.core.logging import (
    LOG_FILE_NAME,
    ConsoleFormatter,
    JSONFormatter,
    get_logger,
    reset_logging,
    setup_logging,
)


@pytest.fixture
def clean_logging():
    reset_logging()
    yield
    reset_logging()


def _record(message: str, context=None, level=logging.INFO) -> logging.LogRecord:
    record = logging.LogRecord("crmpilot.test", level, __file__, 1, message, None, None)
    if context is not None:
        record.context = context
    return record


class TestGetLogger:
    """Test logger naming."""

    def test_get_logger_returns_logger(self):
        """get_logger returns a Logger instance."""
        assert isinstance(get_logger(__name__), logging.Logger)

    def test_same_name_returns_same_logger(self):
        assert get_logger("test.module") is get_logger("test.module")

    def test_loggers_nest_under_crmpilot(self):
        assert get_logger("crmpilot.engine.scoring").name == "crmpilot.engine.scoring"
        assert get_logger("main").name == "crmpilot.main"


class TestFormatters:
    """Test record formatting."""

    def test_json_formatter_includes_context(self):
        line = JSONFormatter().format(_record("Action executed", {"action": "lead_scoring"}))
        data = json.loads(line)
        assert data["message"] == "Action executed"
        assert data["level"] == "INFO"
        assert data["context"] == {"action": "lead_scoring"}

    def test_json_formatter_serialises_dates(self):
        from datetime import date

        line = JSONFormatter().format(_record("x", {"day": date(2026, 3, 4)}))
        assert json.loads(line)["context"]["day"] == "2026-03-04"

    def test_console_formatter_appends_context(self):
        line = ConsoleFormatter().format(_record("Done", {"count": 3}))
        assert line.endswith("Done [count=3]")


class TestSetupLogging:
    """Test handler installation."""

    def test_setup_logging_creates_handlers(self, tmp_path, clean_logging):
        """setup_logging creates file and console handlers."""
        setup_logging(log_dir=tmp_path / "logs")
        root_logger = logging.getLogger("crmpilot")
        assert len(root_logger.handlers) == 2
        assert (tmp_path / "logs" / LOG_FILE_NAME).exists()

    def test_setup_logging_is_idempotent(self, tmp_path, clean_logging):
        setup_logging(log_dir=tmp_path / "logs")
        setup_logging(log_dir=tmp_path / "logs")
        assert len(logging.getLogger("crmpilot").handlers) == 2
