"""
Structured JSON logging: timestamp, event_type, user_id, operation_id.

structlog with ISO timestamps, log level, and consistent keys for aggregation.
All modules should use get_logger() and pass event_type (first arg) plus
keyword context. Secret key material must never be passed to a logger;
addresses go through short_addr(). A redacting processor blanks fields named
like key material as a last guard.

Uses only Python stdlib logging and structlog; no solbeck imports to avoid circular imports.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL_VALUE = getattr(logging, LOG_LEVEL, logging.INFO)

# JSON output for production (LOG_FORMAT=json); human-readable for local
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()


def _add_timestamp(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Ensure timestamp is always present (ISO 8601)."""
    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _normalize_event(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Rename structlog 'event' to event_type for consistency."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    return event_dict


_SECRET_FIELDS = ("secret", "private_key", "key_text", "seed", "bot_token", "password")
_API_KEY_QUERY = re.compile(r"(api[-_]key=)[^&\s]+", re.IGNORECASE)


def _redact_secrets(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Blank fields named like key material and api-key query values in strings."""
    for key, value in list(event_dict.items()):
        if any(marker in key.lower() for marker in _SECRET_FIELDS):
            event_dict[key] = "[redacted]"
        elif isinstance(value, str) and "key=" in value.lower():
            event_dict[key] = _API_KEY_QUERY.sub(r"\1***", value)
    return event_dict


def configure_structlog() -> None:
    """Configure structlog once at import: JSON, timestamp, level, event_type."""
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_timestamp,
        _normalize_event,
        _redact_secrets,
    ]
    if LOG_FORMAT == "json":
        shared_processors.append(structlog.processors.JSONRenderer())
    else:
        shared_processors.append(
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
        )
    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.make_filtering_bound_logger(LOG_LEVEL_VALUE),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Return a structured logger for the given module name.

        logger = get_logger(__name__)
        logger.info("batch_confirmed", signature=sig, batch_index=2)
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_user(user_id: Any, operation_id: str | None = None) -> structlog.BoundLogger:
    """Return a logger with user_id (and operation_id when given) bound to every call."""
    log = get_logger("solbeck").bind(user_id=user_id)
    if operation_id:
        log = log.bind(operation_id=operation_id)
    return log


def short_addr(addr: Any) -> str:
    """ABCD...WXYZ form of an address for log lines and placeholders."""
    s = str(addr or "")
    if len(s) <= 10:
        return s
    return f"{s[:4]}...{s[-4:]}"
