"""Structured JSON logging with correlation ids

Every record is one JSON object. Engine modules pass execution, step and
tenant ids through `extra=` and they land as top-level keys.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional
from contextvars import ContextVar

from ..config.settings import settings


correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

# Third-party loggers kept at WARNING; uvicorn startup lines stay visible
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "pymongo", "apscheduler")

_configured = False


class JsonFormatter(logging.Formatter):
    """Render a record as one JSON line"""

    EXTRA_FIELDS = (
        "execution_id", "step_id", "template_id", "tenant_id", "user_id",
        "decision", "status", "file_id", "stage", "action", "error_code"
    )

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = correlation_id_var.get()
        if correlation_id:
            entry["correlation_id"] = correlation_id

        entry.update({
            field: getattr(record, field)
            for field in self.EXTRA_FIELDS
            if getattr(record, field, None) is not None
        })

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def _rotating_handler(filename: str, formatter: logging.Formatter, level: int = logging.NOTSET) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        os.path.join(settings.logs_path, filename),
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(force: bool = False) -> None:
    """
    Configure the root logger once per process

    Writes JSON to stdout, to app.log, and (ERROR and above) to error.log
    under settings.logs_path. Later calls are no-ops unless force is set.
    """
    global _configured
    if _configured and not force:
        return

    os.makedirs(settings.logs_path, exist_ok=True)
    formatter = JsonFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(_rotating_handler("app.log", formatter))
    root_logger.addHandler(_rotating_handler("error.log", formatter, logging.ERROR))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_correlation_id(correlation_id: Optional[str]) -> None:
    """Bind a correlation id to the current context (request or sweep run)"""
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()
