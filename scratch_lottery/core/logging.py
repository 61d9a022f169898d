"""Logging configuration with JSON output and secret redaction."""

from __future__ import annotations

import json
import logging
import re
from datetime import UTC, datetime
from typing import Any

# Key names whose values never reach log output
SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"secret", re.IGNORECASE),
    re.compile(r"encryption[_-]?key", re.IGNORECASE),
    re.compile(r"sign(ature)?$", re.IGNORECASE),
    re.compile(r"card[_-]?key", re.IGNORECASE),
    re.compile(r"content[_-]?encrypted", re.IGNORECASE),
]

REDACTED = "***REDACTED***"

_INLINE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"((?:secret|sign|key_content|encryption_key)[\s=:]+)\S+", re.IGNORECASE),
]

_RESERVED = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message"}


def is_sensitive_key(key: str) -> bool:
    """Check if a key name matches any sensitive pattern."""
    return any(p.search(key) for p in SENSITIVE_PATTERNS)


def redact_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively redact sensitive fields from a dictionary."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        if is_sensitive_key(key):
            result[key] = REDACTED
        elif isinstance(value, dict):
            result[key] = redact_dict(value)
        else:
            result[key] = value
    return result


def redact_string(text: str) -> str:
    """Redact ``secret=...`` style fragments from freeform log text."""
    for pattern in _INLINE_PATTERNS:
        text = pattern.sub(r"\1" + REDACTED, text)
    return text


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter with sensitive field redaction."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact_string(record.getMessage()),
        }

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }

        extras = {k: v for k, v in record.__dict__.items() if k not in _RESERVED}
        if extras:
            log_entry["extra"] = redact_dict(extras)

        return json.dumps(log_entry, default=str)


class RedactingFormatter(logging.Formatter):
    """Standard text formatter with sensitive field redaction."""

    def __init__(self, fmt: str | None = None, datefmt: str | None = None) -> None:
        super().__init__(
            fmt=fmt or "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt=datefmt or "%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        return redact_string(super().format(record))


def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    """Configure application-wide logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: "json" for structured JSON output, "text" for human-readable.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(RedactingFormatter())
    root.addHandler(handler)

    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
