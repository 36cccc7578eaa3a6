"""
Logging for the care-team service.

Every record carries the request id and acting user of the request that
produced it, so a rejected mutation can be traced back to who tried it:

- JSON lines in production (and always in the optional log file)
- Coloured single lines in development
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

# Bound by RequestIDMiddleware and the actor dependency
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
actor_id_var: ContextVar[Optional[str]] = ContextVar('actor_id', default=None)

_QUIET_LOGGERS = ("aiosqlite", "sqlalchemy.engine", "httpx", "uvicorn.access")


def current_context() -> Dict[str, str]:
    """Request id and actor of the running request, when known."""
    context = {}
    request_id = request_id_var.get()
    if request_id:
        context["request_id"] = request_id
    actor_id = actor_id_var.get()
    if actor_id:
        context["actor_id"] = actor_id
    return context


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        payload.update(current_context())
        payload.update(getattr(record, "extra_data", None) or {})

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class ReadableFormatter(logging.Formatter):
    """Short coloured lines for a developer terminal."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        stamp = datetime.now().strftime('%H:%M:%S.%f')[:-3]
        line = f"{stamp} {color}{record.levelname:8s}{self.RESET} [{record.name}] {record.getMessage()}"

        fields = {**current_context(), **(getattr(record, "extra_data", None) or {})}
        if fields:
            line += " | " + " ".join(f"{k}={v}" for k, v in fields.items())

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ContextLogger(logging.LoggerAdapter):
    """
    Adapter that merges its bound fields into ``extra_data``.

    Call sites pass their own fields as ``extra={"extra_data": {...}}``;
    those win over the bound ones.
    """

    def process(self, msg: str, kwargs: Dict) -> tuple:
        extra = dict(kwargs.get('extra') or {})
        extra['extra_data'] = {**self.extra, **(extra.get('extra_data') or {})}
        kwargs['extra'] = extra
        return msg, kwargs


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[Path] = None
) -> None:
    """
    Install the root handlers. Safe to call more than once.

    Args:
        level: Root log level
        json_output: JSON lines on stdout instead of readable lines
        log_file: Also append JSON lines to this file
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(JsonFormatter() if json_output else ReadableFormatter())
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JsonFormatter())
        root_logger.addHandler(file_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str, **bound) -> ContextLogger:
    """
    Logger for ``name`` with ``bound`` fields on every record.

    Example:
        logger = get_logger(__name__, component="status_audit_log")
    """
    return ContextLogger(logging.getLogger(name), bound)
