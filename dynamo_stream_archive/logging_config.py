"""Structured logging configuration for archive export."""

import json
import logging
import os
from typing import Optional

# Attributes every LogRecord carries; anything else came from `extra=`
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging."""

    def __init__(self, component: str = "dynamo_stream_archive"):
        super().__init__()
        self.component = component

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_obj = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "component": self.component,
        }

        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_obj[key] = value

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        # Add X-Ray trace ID if available
        trace_id = os.environ.get("_X_AMZN_TRACE_ID")
        if trace_id:
            log_obj["trace_id"] = trace_id

        return json.dumps(log_obj, default=str)


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach the JSON formatter to the package logger.

    Args:
        level: Log level name; defaults to the LOG_LEVEL environment
            variable, then INFO.

    Returns:
        The configured package logger
    """
    package_logger = logging.getLogger("dynamo_stream_archive")
    package_logger.setLevel(
        (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    )

    if not any(
        isinstance(handler.formatter, StructuredFormatter)
        for handler in package_logger.handlers
    ):
        handler = logging.StreamHandler()
        handler.setFormatter(StructuredFormatter())
        package_logger.addHandler(handler)
        # Lambda installs its own root handler; avoid duplicate lines
        package_logger.propagate = False

    return package_logger


__all__ = ["StructuredFormatter", "configure_logging"]
