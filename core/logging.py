"""
Logging setup for the reservation engine.

Production and staging emit one JSON object per record; development
gets plain text lines. Booking identifiers passed through `extra=` land
as top-level JSON keys so records can be filtered per restaurant or
reservation.
"""
import logging
import sys
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from core.config import Settings, settings as default_settings


JSON_FORMAT = '%(timestamp)s %(level)s %(name)s %(message)s'
TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Libraries that are noisy at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps source location and deployment context."""

    def __init__(self, *args: Any, app_settings: Optional[Settings] = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.app_settings = app_settings or default_settings

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any]
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = self.formatTime(record, self.datefmt)
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['component'] = record.name.rsplit('.', 1)[-1]
        log_record['function'] = record.funcName
        log_record['line'] = record.lineno

        log_record['app_name'] = self.app_settings.app_name
        log_record['environment'] = self.app_settings.app_env

        if record.exc_info:
            log_record['exc_info'] = self.formatException(record.exc_info)


def build_formatter(app_settings: Settings) -> logging.Formatter:
    if app_settings.app_env in ["production", "staging"]:
        return CustomJsonFormatter(fmt=JSON_FORMAT, datefmt=DATE_FORMAT, app_settings=app_settings)
    return logging.Formatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(app_settings: Optional[Settings] = None) -> None:
    """
    Configure the root logger.

    Replaces any existing root handlers with a single stdout handler.
    SQL statement logging follows the database_echo setting.

    Args:
        app_settings: Settings to read level and environment from
            (defaults to the global settings)
    """
    app_settings = app_settings or default_settings
    formatter = build_formatter(app_settings)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, app_settings.log_level))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    quiet_level = logging.INFO if app_settings.database_echo else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    logging.info(
        "Logging configured",
        extra={
            "log_level": app_settings.log_level,
            "environment": app_settings.app_env,
            "json_logging": isinstance(formatter, CustomJsonFormatter),
        }
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Attach the same fields to a run of related log records.

    Used around batch work such as the recurring scheduler pass, where
    every record should carry the series it concerns. An exception
    leaving the block is logged with the context and re-raised.

    Example:
        with LogContext(logger, series_id=7) as ctx:
            ctx.log("info", "Materialized 2 occurrences")
    """

    def __init__(self, logger: Optional[logging.Logger] = None, **kwargs: Any):
        self.context = kwargs
        self.logger = logger or get_logger(__name__)

    def __enter__(self) -> 'LogContext':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is not None:
            self.logger.error(
                f"{exc_type.__name__} while processing",
                extra=self.context,
                exc_info=True
            )

    def bind(self, **kwargs: Any) -> 'LogContext':
        """Add fields to every later record in this context."""
        self.context.update(kwargs)
        return self

    def log(self, level: str, message: str, **extra_fields: Any) -> None:
        """
        Log a message with the context fields.

        Args:
            level: Level name (debug, info, warning, error, critical)
            message: Log message
            **extra_fields: Fields for this record only
        """
        log_method = getattr(self.logger, level.lower())
        log_method(message, extra={**self.context, **extra_fields})
