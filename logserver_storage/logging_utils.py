"""
Structured logging for storage components.

Every adapter logs through a ``StorageLoggerAdapter`` bound to its namespace
and tenant, so records from many adapters in one process can be told apart.
``configure_structured_logging`` installs a single-line JSON formatter for log
collectors, or a plain text formatter for local runs.

Environment Variables:
    LOGSERVER_LOG_LEVEL: Level name for the library logger (default: INFO)
    LOGSERVER_LOG_FORMAT: json | text (default: json)
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

LIBRARY_LOGGER = "logserver_storage"

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(namespace)s/%(tenant_id)s] %(message)s"

# LogRecord attributes that are never copied into the JSON payload
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class StructuredJsonFormatter(logging.Formatter):
    """
    Formats records as single-line JSON objects.

    Fields:
    - timestamp: record creation time, ISO 8601 in UTC
    - level, logger, message
    - exception: formatted traceback when present
    - static fields given at construction (e.g. service name)
    - every ``extra`` field, stringified when not JSON serializable
    """

    def __init__(self, static_fields: dict[str, Any] | None = None):
        super().__init__()
        self.static_fields = dict(static_fields or {})

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(self.static_fields)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_") or value is None:
                continue
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                value = str(value)
            payload[key] = value

        return json.dumps(payload)


class _ContextDefaults(logging.Filter):
    """Fill the context fields the text format references."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key in ("namespace", "tenant_id"):
            if not hasattr(record, key):
                setattr(record, key, "-")
        return True


def _level_from_env(default: int) -> int:
    name = os.environ.get("LOGSERVER_LOG_LEVEL", "").strip().upper()
    if not name:
        return default
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else default


def configure_structured_logging(
    level: int | None = None,
    logger_name: str = LIBRARY_LOGGER,
    json_format: bool | None = None,
    static_fields: dict[str, Any] | None = None,
) -> logging.Logger:
    """
    Install a stdout handler on the library logger.

    Args:
        level: Logging level; defaults to LOGSERVER_LOG_LEVEL, then INFO
        logger_name: Logger to configure (default: the library logger)
        json_format: JSON (True) or text (False); defaults to LOGSERVER_LOG_FORMAT
        static_fields: Fields added to every JSON record

    Returns:
        The configured logger. Calling again replaces the previous handlers.
    """
    if level is None:
        level = _level_from_env(logging.INFO)
    if json_format is None:
        json_format = os.environ.get("LOGSERVER_LOG_FORMAT", "json").strip().lower() != "text"

    handler = logging.StreamHandler(sys.stdout)
    if json_format:
        handler.setFormatter(StructuredJsonFormatter(static_fields))
    else:
        handler.addFilter(_ContextDefaults())
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    logger = logging.getLogger(logger_name)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def get_storage_logger(name: str) -> logging.Logger:
    """Logger named ``logserver_storage.<name>`` for a storage component."""
    return logging.getLogger(f"{LIBRARY_LOGGER}.{name}")


class StorageLoggerAdapter(logging.LoggerAdapter):
    """
    Adds namespace/tenant context to every record.

    Bound context wins over a caller's ``extra`` of the same name.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**kwargs.get("extra", {}), **self.extra}
        return msg, kwargs

    def bind(self, **context: Any) -> "StorageLoggerAdapter":
        """Return an adapter with additional context on the same logger."""
        return StorageLoggerAdapter(self.logger, {**self.extra, **context})
