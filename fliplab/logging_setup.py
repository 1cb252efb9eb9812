"""Shared logging setup.

Provides a request ID context that is stamped onto every log record, a
console formatter for development and a one-line JSON formatter for log
shipping.
"""

import contextvars
import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from typing import Optional

_request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "request_id", default=""
)

# Attributes every LogRecord has; anything else came in through ``extra=``
_RESERVED_ATTRS = set(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "request_id"}


def new_request_id() -> str:
    return uuid.uuid4().hex


def set_request_id(request_id: str) -> contextvars.Token:
    """Set the request ID in the current async context."""
    return _request_id_var.set(request_id)


def reset_request_id(token: contextvars.Token) -> None:
    _request_id_var.reset(token)


def get_request_id() -> str:
    """Retrieve the request ID from the current async context."""
    return _request_id_var.get()


class RequestIdFilter(logging.Filter):
    """Inject ``request_id`` from contextvars into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "request_id", ""):
            record.request_id = _request_id_var.get()
        return True


class JsonFormatter(logging.Formatter):
    """Emit each log record as a single JSON object on one line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", ""),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info and record.exc_info[1] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    """Plain console output with optional request prefix."""

    def format(self, record: logging.LogRecord) -> str:
        request_id = getattr(record, "request_id", "")
        request_part = f" [{request_id[:8]}]" if request_id else ""
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        line = f"{timestamp} - {record.name} - {record.levelname}{request_part} - {record.getMessage()}"
        if record.exc_info and record.exc_info[1] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


_initialized = False


def setup_logging(level: str = "INFO", log_format: str = "console", force: bool = False) -> None:
    """One-time logging initialisation (idempotent unless ``force``).

    * Sets the root logger level
    * Replaces existing handlers with a single ``StreamHandler(stderr)``
    * Attaches :class:`RequestIdFilter` and the chosen formatter
    * Quiets noisy third-party libraries
    """
    global _initialized
    if _initialized and not force:
        return
    _initialized = True

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(JsonFormatter() if log_format == "json" else ConsoleFormatter())
    root.addHandler(handler)

    for lib in ("aiohttp.access", "uvicorn.access", "httpx", "httpcore"):
        logging.getLogger(lib).setLevel(logging.WARNING)


def current_or_new_request_id(request_id: Optional[str] = None) -> str:
    """Use ``request_id`` if given, else the context's, else a fresh one."""
    return request_id or get_request_id() or new_request_id()
