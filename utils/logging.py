"""Logging setup shared by the API and the background recovery worker.

Provides:
  - JsonFormatter: newline-delimited JSON records (APP_LOG_FORMAT=json)
  - RedactingFilter: masks email addresses and identification numbers so
    voter and admin data never reaches log output
  - configure_logging(): installs one stream handler with both
"""

from __future__ import annotations

import json
import logging
import re

_EMAIL_RE = re.compile(r"[^\s@\"']+@[^\s@\"']+\.[^\s@\"',;]+")
# Identification numbers are digit runs; dates and short counts are left alone.
_DIGITS_RE = re.compile(r"(?<![\d.-])\d{5,}(?![\d.-])")

# Attributes copied from ``extra={...}`` into JSON output
_EXTRA_FIELDS = (
    "method", "path", "status", "duration_ms", "client_ip", "request_id",
    "submission_id", "attempt", "table",
)


def redact(text: str) -> str:
    """Mask email addresses and long digit runs in *text*."""
    text = _EMAIL_RE.sub("[email]", text)
    return _DIGITS_RE.sub("[redacted]", text)


class RedactingFilter(logging.Filter):
    """Rewrite each record's message with personal data masked."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


class JsonFormatter(logging.Formatter):
    """Emit log records as newline-delimited JSON."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _EXTRA_FIELDS:
            if hasattr(record, key):
                data[key] = getattr(record, key)
        if record.exc_info:
            data["exc_info"] = redact(self.formatException(record.exc_info))
        return json.dumps(data)


def configure_logging(log_format: str = "text", level: int = logging.INFO) -> logging.Handler:
    """Install a single redacting stream handler on the root logger.

    Args:
        log_format: ``"json"`` for JsonFormatter, anything else for plain text.
        level: Root log level.

    Returns:
        The installed handler.
    """
    handler = logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
    handler.addFilter(RedactingFilter())
    logging.basicConfig(handlers=[handler], level=level, force=True)
    return handler
