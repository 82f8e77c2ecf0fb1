"""Structured JSON logging with request ID context."""

import contextvars
import json
import logging
import os
import sys
import time

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# ContextVar rather than thread-local so the id follows work handed to executors.
_request_id: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")


def set_request_id(rid: str):
    _request_id.set(rid)


def get_request_id() -> str:
    return _request_id.get()


class JSONFormatter(logging.Formatter):
    def format(self, record):
        entry = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
            "request_id": get_request_id(),
        }
        for k, v in getattr(record, "fields", {}).items():
            entry[k] = v
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class StructuredLogger:
    def __init__(self, name: str):
        self._logger = logging.getLogger(f"overlay.{name}")
        if not self._logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(JSONFormatter())
            self._logger.addHandler(handler)
            self._logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
            self._logger.propagate = False

    def _log(self, level, msg, exc_info=None, **fields):
        if not self._logger.isEnabledFor(level):
            return
        self._logger.log(level, msg, exc_info=exc_info, extra={"fields": fields})

    def info(self, msg, **kw): self._log(logging.INFO, msg, **kw)
    def warning(self, msg, **kw): self._log(logging.WARNING, msg, **kw)
    def error(self, msg, **kw): self._log(logging.ERROR, msg, **kw)
    def debug(self, msg, **kw): self._log(logging.DEBUG, msg, **kw)

    def exception(self, msg, **kw):
        self._log(logging.ERROR, msg, exc_info=True, **kw)


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(name)
