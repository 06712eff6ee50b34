"""JSON logging with request and actor context carried in contextvars."""

from __future__ import annotations

import contextvars
import json
import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

_request_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)
_actor_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("actor_id", default=None)

# attributes every LogRecord carries; anything else arrived through ``extra``
_RESERVED = frozenset(logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
    "taskName",
}
_CONTEXT_FIELDS = ("request_id", "actor_id")


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()
        record.actor_id = _actor_id.get()
        return True


class JSONLogFormatter(logging.Formatter):
    """One JSON object per line; ``extra`` fields are merged at the top level."""

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in _CONTEXT_FIELDS:
            payload[field] = getattr(record, field, None)
        payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED and key not in _CONTEXT_FIELDS and not key.startswith("_")
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: int | str = logging.INFO) -> None:
    """Route the root logger (and uvicorn's) through a single JSON stdout handler.

    Calling it again only adjusts the level.
    """

    root = logging.getLogger()
    root.setLevel(level)
    if any(isinstance(h.formatter, JSONLogFormatter) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONLogFormatter())
    handler.addFilter(RequestContextFilter())
    root.handlers = [handler]

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.propagate = True


@contextmanager
def log_context(request_id: str | None = None, actor_id: str | None = None) -> Iterator[None]:
    """Bind request and actor ids for the duration of the block."""

    request_token = _request_id.set(request_id)
    actor_token = _actor_id.set(actor_id)
    try:
        yield
    finally:
        _actor_id.reset(actor_token)
        _request_id.reset(request_token)


def set_actor_context(actor_id: str | None) -> None:
    _actor_id.set(actor_id)


def get_current_actor() -> str:
    return _actor_id.get() or "anonymous"


def get_request_id() -> str:
    return _request_id.get() or "unknown"


__all__ = [
    "JSONLogFormatter",
    "RequestContextFilter",
    "configure_logging",
    "get_current_actor",
    "get_request_id",
    "log_context",
    "set_actor_context",
]
