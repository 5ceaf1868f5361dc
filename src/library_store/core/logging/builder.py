# src/library_store/core/logging/builder.py
"""
Logging builder: turn Settings into a dictConfig mapping and apply it.

    setup_logging(get_settings())

The library itself only ever calls `logging.getLogger(__name__)`; configuring
handlers is left to the process embedding it (an application entry point, a
script, the test suite).
"""

from pathlib import Path
import logging
import logging.config

from library_store.config.settings import Settings
from library_store.utils.project import get_project_name

from .formatters import JsonFormatter, ColorFormatter
from .filters import CorrelationIdFilter, RedactFilter
from .handlers import (
    get_console_handler,
    get_file_handler,
    get_error_file_handler,
    get_error_console_handler,
)


def make_dict_config(settings: Settings) -> dict:
    """
    Build the dictConfig mapping for `settings`.

      - formatters: "standard" (color or plain) and "json"
      - filters: "correlation_id", "redact"
      - handlers: console, plus rotating files when LOG_DIR is set and
        LOG_TO_STDOUT is off, otherwise an error console
      - loggers: root, library_store, sqlalchemy.engine
    """
    formatters = {
        "standard": {
            "()": ColorFormatter if settings.LOG_FORMAT == "text" else logging.Formatter,
            "format": "%(asctime)s | %(levelname)s | %(name)s | %(correlation_id)s | %(message)s",
        },
        "json": {
            "()": JsonFormatter,
            "env": settings.ENV,
            "service": get_project_name(default="library-store"),
        },
    }

    filters = {
        "correlation_id": {"()": CorrelationIdFilter},
        "redact": {"()": RedactFilter},
    }

    handlers: dict[str, dict] = {"console": get_console_handler(settings)}
    if (not settings.LOG_TO_STDOUT) and settings.LOG_DIR:
        handlers["file"] = get_file_handler(settings)
        handlers["error_file"] = get_error_file_handler(settings)
    else:
        handlers["error_console"] = get_error_console_handler(settings)

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": filters,
        "handlers": handlers,
        "loggers": {
            "": {
                "handlers": list(handlers.keys()),
                "level": settings.LOG_LEVEL,
                "propagate": True,
            },
            "library_store": {
                "level": settings.LOG_LEVEL,
                "propagate": True,
            },
            # SQL statement logging is noisy; only on demand.
            "sqlalchemy.engine": {
                "level": "DEBUG" if settings.ENABLE_SQL_LOGGING else "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
        },
    }


def setup_logging(settings: Settings) -> None:
    """Create LOG_DIR if files are written, apply the config, add a root correlation filter."""
    if (not settings.LOG_TO_STDOUT) and settings.LOG_DIR:
        Path(settings.LOG_DIR).mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(make_dict_config(settings))

    # Safety net for records emitted through handlers attached outside dictConfig.
    logging.getLogger().addFilter(CorrelationIdFilter())
