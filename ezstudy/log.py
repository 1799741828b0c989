"""JSON logging for the EzStudy backend.

Every line is one JSON object. Fields bound for the current request are
added when set: `request_id` from the middleware, `session_id` from the chat
route and `provider` from the gateway while it talks to an upstream model.
"""

import json
import logging
import sys
import time
from contextvars import ContextVar
from typing import Optional

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_session_id: ContextVar[Optional[str]] = ContextVar("session_id", default=None)
_provider: ContextVar[Optional[str]] = ContextVar("provider", default=None)

_CONTEXT_FIELDS = (
    ("request_id", _request_id),
    ("session_id", _session_id),
    ("provider", _provider),
)


def set_request_id(rid: Optional[str]) -> None:
    """Bind the correlation id of the current request; clears the other fields."""
    _request_id.set(rid)
    _session_id.set(None)
    _provider.set(None)


def set_session_id(session_id: Optional[str]) -> None:
    _session_id.set(session_id)


def set_provider(name: Optional[str]) -> None:
    _provider.set(name)


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base = {
            "level": record.levelname,
            "ts": round(time.time(), 3),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key, var in _CONTEXT_FIELDS:
            value = var.get()
            if value:
                base[key] = value
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False)


def configure_logging(level: int | str = "INFO") -> None:
    """Send every log record to stdout as JSON at `level` (name or number)."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    logging.basicConfig(level=level, handlers=[handler], force=True)
