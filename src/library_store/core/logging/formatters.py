# src/library_store/core/logging/formatters.py
"""
Custom logging formatters.

  - JsonFormatter: one JSON object per line for log collectors. Extras passed
    through `extra={...}` become top-level keys; anything that does not
    serialize is stringified so a log call never raises.
  - ColorFormatter: compact ANSI-colored lines for a developer terminal.

builder.py picks one per handler based on settings.LOG_FORMAT.
"""

import json
import logging
from typing import Any
from logging import LogRecord

from library_store.utils.project import get_project_version

PROJECT_VERSION = get_project_version()

# LogRecord attributes that are not extras.
_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    """
    Structured JSON formatter.

    Construction:
      - env: environment name (e.g. "development" | "production").
      - service: logical service name included in every line.
      - datefmt: optional date format used by formatTime.
    """

    def __init__(self, *, env: str | None = None, service: str | None = "library-store",
                 datefmt: str | None = None):
        super().__init__(datefmt=datefmt)
        self.env = env
        self.service = service

    def format(self, record: LogRecord) -> str:
        log_record: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "pathname": record.pathname,
            "lineno": record.lineno,
            "correlation_id": getattr(record, "correlation_id", "-"),
            "service": self.service,
            "env": self.env,
            "version": PROJECT_VERSION,
        }

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_record["stack_info"] = self.formatStack(record.stack_info)

        for k, v in record.__dict__.items():
            if k in log_record or k in _RESERVED or k.startswith("_"):
                continue
            try:
                json.dumps(v)
                log_record[k] = v
            except (TypeError, ValueError):
                log_record[k] = str(v)

        return json.dumps(log_record, ensure_ascii=False, default=str)


class ColorFormatter(logging.Formatter):
    """Development formatter: TIMESTAMP | LEVEL | LOGGER | CORRELATION_ID | MESSAGE."""

    COLOR_CODES = {
        "DEBUG": "\033[1;36;47m",   # bold cyan on white
        "INFO": "\033[32m",         # green
        "WARNING": "\033[33m",      # yellow
        "ERROR": "\033[31m",        # red
        "CRITICAL": "\033[1;41m",   # bold on red background
        "RESET": "\033[0m",
    }

    def __init__(self, fmt: str | None = None, datefmt: str | None = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)

    def format(self, record: LogRecord) -> str:
        color = self.COLOR_CODES.get(record.levelname, "")
        reset = self.COLOR_CODES["RESET"]
        timestamp = self.formatTime(record, self.datefmt)

        base = (
            f"{timestamp} | {color}{record.levelname:<10}{reset} | "
            f"{record.name:<30} | "
            f"{getattr(record, 'correlation_id', '-'):<10} | "
            f"{record.getMessage()}"
        )

        if record.exc_info:
            base = base + "\n" + self.formatException(record.exc_info)

        return base
