"""Structured JSON audit logging for the enrichment gateway.

Logs go to stdout as JSON lines, with optional file output via the
AUDIT_LOG_FILE env var. Every dispatch attempt is one entry carrying the
credential id, the operation, the attempt number and the outcome. Fields
that could carry key material are blanked before a line is written, so a
careless `extra=` can never put an API key in the log.
"""

import json
import logging
import sys
import time
import uuid
from datetime import datetime, timezone
from contextvars import ContextVar

from vocab_gateway.config.settings import get_settings

# Request-scoped context for correlating log entries
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

LOGGER_NAME = "vocab_gateway.audit"

SECRET_FIELDS = frozenset({"api_key", "apiKey", "key", "secret", "secretMaterial", "x-goog-api-key"})
REDACTED = "[redacted]"


def redact(data: dict) -> dict:
    return {k: (REDACTED if k in SECRET_FIELDS else v) for k, v in data.items()}


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": request_id_var.get(""),
        }
        # Dispatch fields (operation, credential_id, attempt, ...) from `extra={"audit_data": ...}`
        if hasattr(record, "audit_data"):
            log_entry.update(redact(record.audit_data))
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str, ensure_ascii=False)


def setup_logging() -> None:
    """Configure the audit logger with JSON output."""
    settings = get_settings()

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    logger.handlers.clear()

    formatter = JSONFormatter()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    logger.addHandler(stdout_handler)

    if settings.audit_log_file:
        file_handler = logging.FileHandler(settings.audit_log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Prevent propagation to root logger (avoids duplicate output)
    logger.propagate = False


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def generate_request_id() -> str:
    return uuid.uuid4().hex[:12]


class RequestTimer:
    """Context manager to measure call latency."""

    def __init__(self):
        self.start_time: float = 0
        self.elapsed_ms: float = 0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args):
        self.elapsed_ms = round((time.perf_counter() - self.start_time) * 1000, 2)
