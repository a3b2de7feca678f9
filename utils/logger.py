"""
Centralized structured logging.

Every module logs through ``setup_logger(__name__)``:
 - structured JSON lines on stdout (ts, level, logger, msg + extra fields)
 - level driven by the LOG_LEVEL environment variable
 - ``log_extra(**fields)`` builds the ``extra=`` payload understood by JsonFormatter
"""

from __future__ import annotations
import datetime
import json
import logging
import os
import sys
from typing import Any

# attributes every LogRecord carries; anything else came in through ``extra=``
_RESERVED = set(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "extra"}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }

        # fields passed as extra=log_extra(...)
        nested = getattr(record, "extra", None)
        if isinstance(nested, dict):
            payload.update(nested)

        # fields passed directly as extra={...}
        for k, v in record.__dict__.items():
            if k not in _RESERVED:
                payload[k] = v

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def setup_logger(name: str) -> logging.Logger:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger


def log_extra(**kwargs: Any) -> dict:
    return {"extra": kwargs}
