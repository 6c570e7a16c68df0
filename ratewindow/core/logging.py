"""Logging for limiter events.

Limiter code logs an event name as the message (``rate_limit.exceeded``,
``store.created``...) and puts flat fields such as ``key_prefix``,
``key_hash`` and ``retry_after_s`` in ``extra``. Both formatters here render
those fields, and SensitiveDataFilter keeps credentials and raw identifiers
out of the output.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable

from ratewindow.core.config import LogSettings, settings

REDACTED = "[REDACTED]"

SENSITIVE_KEYS_DEFAULT = frozenset(
    {
        "password",
        "token",
        "api_key",
        "identifier",
        "url",
        "store_url",
        "redis_url",
    }
)

# Fields the limiter attaches to every rate_limit.* event; rendered first.
LIMITER_FIELDS = ("key_prefix", "key_hash", "limit", "count", "remaining", "window_s")

# Attributes every LogRecord has; anything else arrived through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def hash_identifier(identifier: str) -> str:
    """Return a short, stable digest of ``identifier`` (16 hex chars of SHA-256)."""

    return hashlib.sha256(identifier.encode()).hexdigest()[:16]


def event_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Return the ``extra`` fields of ``record``, limiter fields first."""

    extras = {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }
    ordered = {key: extras.pop(key) for key in LIMITER_FIELDS if key in extras}
    ordered.update(extras)
    return ordered


class SensitiveDataFilter(logging.Filter):
    """Replace sensitive ``extra`` fields with a placeholder."""

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self.sensitive_keys = {key.lower() for key in (sensitive_keys or SENSITIVE_KEYS_DEFAULT)}

    def filter(self, record: logging.LogRecord) -> bool:
        for key in event_fields(record):
            if key.lower() in self.sensitive_keys:
                setattr(record, key, REDACTED)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, event, then fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": record.getMessage(),
        }
        payload.update(event_fields(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class KeyValueFormatter(logging.Formatter):
    """Plain text line with the event fields appended as ``key=value``."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s %(message)s")

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        fields = " ".join(f"{key}={value}" for key, value in event_fields(record).items())
        return f"{line} {fields}" if fields else line


def _build_handler(cfg: LogSettings) -> logging.Handler:
    if cfg.output == "stdout":
        return logging.StreamHandler(sys.stdout)

    path = Path(cfg.file_path or "logs/ratewindow.log")
    path.parent.mkdir(parents=True, exist_ok=True)
    if cfg.max_bytes:
        return RotatingFileHandler(
            path, maxBytes=cfg.max_bytes, backupCount=cfg.backup_count, encoding="utf-8"
        )
    return logging.FileHandler(path, encoding="utf-8")


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Install a single redacting handler on the root logger.

    Applications embedding the limiter call this once at startup; the
    library itself only emits records.
    """

    cfg = log_settings or settings.log

    handler = _build_handler(cfg)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter() if cfg.format == "json" else KeyValueFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))
