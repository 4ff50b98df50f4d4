"""
Structured JSON logging configuration (Monolog-style).

Provides structured logging with channels (http, db, auth, scoring,
attainment), request ID tracking, and context-rich log entries. All log
output is valid JSON written to stdout for container log aggregation.
"""

import logging
import json
import uuid
from datetime import datetime, timezone
from contextvars import ContextVar

from timestables.config import LOG_LEVEL

# Each incoming HTTP request gets a unique UUID, attached to every log
# entry produced while that request is handled.
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

CHANNELS = ["http", "db", "auth", "scoring", "attainment"]


class StructuredJsonFormatter(logging.Formatter):
    """
    Formatter that renders each record as one JSON object:
    timestamp, level, message, channel, context and extra. A record
    logged with exc_info also carries the formatted traceback.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
            "channel": getattr(record, "channel", record.name.split(".")[-1] if "." in record.name else "app"),
            "context": {
                "request_id": request_id_var.get(""),
                **(getattr(record, "context", {}) or {})
            },
            "extra": getattr(record, "extra_data", {}) or {}
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging():
    """Install the JSON formatter on the root logger and set channel levels."""
    formatter = StructuredJsonFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    root_logger.handlers = [handler]

    for channel in CHANNELS:
        logger = logging.getLogger(f"timestables.{channel}")
        logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

    return root_logger


def get_logger(channel: str) -> logging.Logger:
    """Get the logger for a channel (http, db, auth, scoring, attainment)."""
    return logging.getLogger(f"timestables.{channel}")


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None, exc_info=None):
    """
    Emit a structured log entry.

    Args:
        logger: The channel logger to use
        level: Log level string (INFO, WARNING, ERROR, DEBUG)
        message: Human-readable log message
        context: Business context (attempt_id, student_id, class_id, ...)
        extra_data: Additional metadata (duration_ms, counts, ...)
        exc_info: Exception (or True) whose traceback goes into the entry
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logger.log(
        log_level,
        message,
        exc_info=exc_info,
        extra={"context": context or {}, "extra_data": extra_data or {}, "channel": logger.name.split(".")[-1]}
    )


def generate_request_id() -> str:
    """Generate a new UUID for request tracking."""
    return str(uuid.uuid4())
