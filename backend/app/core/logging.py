"""
Structured JSON Logging Module.

Every line written by the ledger is a single JSON object carrying the
correlation ID of the request that produced it, so an amendment can be
traced from the HTTP call down to the revision row it wrote.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from contextvars import ContextVar

# Context vars populated per request by TracingMiddleware
correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
event_id_ctx: ContextVar[Optional[str]] = ContextVar("event_id", default=None)
user_id_ctx: ContextVar[Optional[str]] = ContextVar("user_id", default=None)


class JSONFormatter(logging.Formatter):
    """
    Formatter that dumps records as JSON.
    """

    def __init__(self, service: str = "event-log-ledger"):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "func": record.funcName,
            "line": record.lineno,
            "service": self.service,
        }

        cid = correlation_id_ctx.get()
        if cid:
            log_data["correlation_id"] = cid

        eid = event_id_ctx.get()
        if eid:
            log_data["event_id"] = eid

        uid = user_id_ctx.get()
        if uid:
            log_data["user_id"] = uid

        # Add extra fields if passed
        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", service: str = "event-log-ledger"):
    """
    Configures the root logger to use JSON formatting.
    """
    logger = logging.getLogger()
    logger.setLevel(level)

    # Clear existing handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter(service=service))
    logger.addHandler(handler)

    # Silence noisy libraries
    logging.getLogger("uvicorn.access").disabled = True
    logging.getLogger("sqlalchemy.engine").setLevel("WARNING")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
