"""Structured logging for the API and the sync workers.

One JSON object per line on stdout. Every record carries the request ID of
the HTTP request (or "no-request-id" in workers) and, when the call site
passes them via ``extra``, the tenant, job, price list and SKU it concerns.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from .request_id import NO_REQUEST_ID, get_request_id

SERVICE_NAME = "pricing"

# Extra attributes copied into the JSON payload when a log call supplies them
CONTEXT_FIELDS = ("org_id", "job_id", "price_list_id", "sku")

TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(request_id)s] %(name)s: %(message)s"

# Chatty libraries kept at WARNING regardless of the configured level
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "celery", "kombu")


class RequestIDFilter(logging.Filter):
    """Stamp each record with the current request ID."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", NO_REQUEST_ID),
            "function": f"{record.module}.{record.funcName}",
            "message": record.getMessage(),
        }
        payload.update({
            field: str(getattr(record, field))
            for field in CONTEXT_FIELDS
            if getattr(record, field, None) is not None
        })

        if record.exc_info:
            payload["error"] = str(record.exc_info[1])
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO", json_format: bool = True) -> None:
    """Install a single stdout handler on the root logger.

    Safe to call more than once (API startup, Celery worker startup):
    existing root handlers are replaced.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        json_format: JSON lines when True, human-readable text otherwise
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(TEXT_FORMAT))
    handler.addFilter(RequestIDFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
