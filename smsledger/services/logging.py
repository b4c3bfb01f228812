"""
Structured logging for the SMS ledger service.

Everything logs through the ``smsledger`` logger tree. Helpers attach
structured fields to the record as ``extra_fields``; the JSON formatter
merges them into the emitted object, the text formatter ignores them.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
USE_JSON_LOGS = os.getenv("USE_JSON_LOGS", "false").lower() == "true"

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("smsledger")


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        payload.update(getattr(record, "extra_fields", {}))
        return json.dumps(payload, default=str)


def configure_logging(level: str = LOG_LEVEL, json_logs: bool = USE_JSON_LOGS) -> logging.Logger:
    """(Re)install the single stdout handler on the package logger."""
    handler = logging.StreamHandler(sys.stdout)
    if json_logs:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level, logging.INFO))
    logger.propagate = False
    return logger


configure_logging()


def _emit(level: int, message: str, fields: Dict[str, Any], exc_info=None) -> None:
    logger.log(level, message, exc_info=exc_info, extra={"extra_fields": fields})


def log_request(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    client_id: Optional[str] = None,
    **kwargs
):
    fields = {
        "type": "http_request",
        "method": method,
        "path": path,
        "status_code": status_code,
        "duration_ms": round(duration_ms, 2),
        **kwargs,
    }
    if client_id:
        fields["client_id"] = client_id
    _emit(logging.INFO, f"{method} {path} {status_code}", fields)


def log_event(event: str, **fields):
    """Domain event: pattern transition, captured SMS, bulk run, user change."""
    details = " ".join(f"{k}={v}" for k, v in fields.items())
    _emit(logging.INFO, f"{event} {details}".strip(), {"type": "event", "event": event, **fields})


def log_error(
    error_type: str,
    message: str,
    context: Optional[Dict[str, Any]] = None,
    exception: Optional[Exception] = None
):
    fields = {"type": "error", "error_type": error_type, **(context or {})}
    _emit(logging.ERROR, message, fields, exc_info=exception)
