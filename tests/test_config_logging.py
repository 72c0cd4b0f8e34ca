"""Tests for settings validation and logging setup."""
import json
import logging

import pytest
from pydantic import ValidationError

from core.config import Settings
from core.logging import CustomJsonFormatter, LogContext, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.unit
class TestSettings:
    """Tests for environment-driven settings."""

    def test_log_level_normalized(self):
        """Test log levels are accepted in any case."""
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        """Test unknown log levels are rejected."""
        with pytest.raises(ValidationError):
            Settings(log_level="verbose")

    def test_invalid_env(self):
        """Test unknown environments are rejected."""
        with pytest.raises(ValidationError):
            Settings(app_env="qa")

    def test_env_override(self, monkeypatch):
        """Test values are read from the environment."""
        monkeypatch.setenv("PEAK_HOURS_MAX_DURATION", "120")
        monkeypatch.setenv("APP_ENV", "Production")

        settings = Settings()

        assert settings.peak_hours_max_duration == 120
        assert settings.is_production

    def test_bounds(self):
        """Test numeric settings are range checked."""
        with pytest.raises(ValidationError):
            Settings(slot_interval_minutes=0)


@pytest.mark.unit
class TestLogging:
    """Tests for log formatting and context."""

    def test_json_formatter(self):
        """Test JSON records carry the application context."""
        formatter = CustomJsonFormatter(
            fmt="%(timestamp)s %(level)s %(name)s %(message)s",
            app_settings=Settings(app_env="staging"),
        )
        record = logging.LogRecord("services.booking_ledger", logging.INFO, __file__, 10, "Booked", None, None)

        body = json.loads(formatter.format(record))

        assert body["message"] == "Booked"
        assert body["level"] == "INFO"
        assert body["logger"] == "services.booking_ledger"
        assert body["environment"] == "staging"
        assert body["component"] == "booking_ledger"

    def test_setup_logging_json_in_production(self, restore_root_logger):
        """Test production installs a single JSON handler on the root logger."""
        setup_logging(Settings(app_env="production", log_level="WARNING"))

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, CustomJsonFormatter)

    def test_log_context_adds_fields(self, caplog):
        """Test context fields are attached to every record."""
        logger = logging.getLogger("tests.context")
        with caplog.at_level(logging.INFO, logger="tests.context"):
            with LogContext(logger, series_id=5) as ctx:
                ctx.bind(pattern="weekly").log("info", "Materialized", booked=2)

        record = caplog.records[-1]
        assert record.series_id == 5
        assert record.pattern == "weekly"
        assert record.booked == 2

    def test_log_context_reraises(self, caplog):
        """Test an exception in the block is logged with context and propagates."""
        logger = logging.getLogger("tests.context")
        with caplog.at_level(logging.ERROR, logger="tests.context"):
            with pytest.raises(RuntimeError):
                with LogContext(logger, series_id=9):
                    raise RuntimeError("boom")

        assert caplog.records[-1].series_id == 9
