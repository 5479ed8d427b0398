"""
Structured logging configuration.

Provides:
    • JSON-formatted logs for production (machine-parseable)
    • Pretty console logs for development (human-readable)
    • Request-scoped context (request_id, client_ip, endpoint, actor_id)

Dispatch code attaches structured extras (caller_id, contact_id, channel,
dispatch_id...) so a single failed delivery can be traced back to the call
and the contact it belongs to:

    logger.warning("SMS failed", extra={"channel": "sms", "contact_id": "c1"})

Usage:
    from backend.app.core.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__)
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict

from backend.app.core.config import settings

# Extras copied from log records into the JSON output, in this order
STRUCTURED_FIELDS = (
    "dispatch_id",
    "caller_id",
    "contact_count",
    "contact_id",
    "channel",
    "duration_ms",
    "status_code",
    "endpoint",
)

# Subset echoed on the dev console
_CONSOLE_FIELDS = ("dispatch_id", "channel", "contact_id")

_request_context: ContextVar[Dict[str, Any]] = ContextVar(
    "request_context", default={}
)


def set_request_context(**kwargs: Any) -> None:
    """Replace the request-scoped log context; call with no args to clear."""
    _request_context.set({k: v for k, v in kwargs.items() if v is not None})


def get_request_context() -> Dict[str, Any]:
    return _request_context.get()


def _structured_extras(record: logging.LogRecord, fields=STRUCTURED_FIELDS) -> Dict[str, Any]:
    return {key: getattr(record, key) for key in fields if hasattr(record, key)}


# ── JSON Formatter (Production) ──

class JSONFormatter(logging.Formatter):
    """One JSON object per line for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        ctx = get_request_context()
        if ctx:
            entry["context"] = ctx

        entry.update(_structured_extras(record))

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }

        return json.dumps(entry, default=str)


# ── Pretty Formatter (Development) ──

class PrettyFormatter(logging.Formatter):
    """Coloured single-line format for local development."""

    COLORS = {
        "DEBUG": "\033[36m",    # Cyan
        "INFO": "\033[32m",     # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[35m", # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        ts = self.formatTime(record, "%H:%M:%S")

        ctx = get_request_context()
        tags = []
        if ctx.get("request_id"):
            tags.append(ctx["request_id"][:8])
        if ctx.get("actor_id"):
            tags.append(f"as {ctx['actor_id']}")
        prefix = f" [{' '.join(tags)}]" if tags else ""

        extras = _structured_extras(record, _CONSOLE_FIELDS)
        suffix = "".join(f" {k}={v}" for k, v in extras.items())

        line = (
            f"{color}{ts} {record.levelname:8s}{self.RESET}"
            f"{prefix} {record.name}: {record.getMessage()}{suffix}"
        )
        if record.exc_info and record.exc_info[1]:
            line += f"\n  {type(record.exc_info[1]).__name__}: {record.exc_info[1]}"
        return line


# ── Setup ──

def setup_logging() -> None:
    """Install a single stdout handler on the root logger."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if settings.is_production else PrettyFormatter())
    root.addHandler(handler)

    # Provider HTTP chatter; our own channel logs carry the outcome
    for noisy in ("uvicorn.access", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger — call once per module."""
    return logging.getLogger(name)
