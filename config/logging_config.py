"""
Logging setup for the gallery API.

    LOG_LEVEL   root level (default INFO)
    LOG_JSON=1  one JSON object per line, for hosted log aggregators

Every record gets a ``request_id`` attribute: the id RequestLoggingMiddleware
assigned to the request being served, or "-" outside a request. Webhook and
billing log lines can then be joined to their HTTP access line.

Keep PII and secrets out of messages: no emails, bearer tokens, webhook
signatures or raw provider payloads. Ids are fine.
"""
import json
import logging
import os
import sys
from contextvars import ContextVar, Token
from typing import Any, Optional

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_NOISY_LOGGERS = ("uvicorn.access", "stripe", "httpx", "httpcore")

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s rid=%(request_id)s: %(message)s"


def set_request_id(value: str) -> Token:
    return _request_id.set(value)


def reset_request_id(token: Token) -> None:
    _request_id.reset(token)


def current_request_id() -> Optional[str]:
    return _request_id.get()


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "request_id", None):
            record.request_id = current_request_id() or "-"
        return True


def _json_default(obj: Any):
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    return str(obj)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + "Z",
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", "-"),
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=_json_default)


def configure_logging() -> None:
    level = getattr(logging, (os.getenv("LOG_LEVEL") or "INFO").upper(), logging.INFO)
    use_json = os.getenv("LOG_JSON", "").lower() in ("1", "true", "yes")

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(JsonFormatter() if use_json else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.setLevel(level)
    # create_app may run more than once per process (tests, --reload)
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
