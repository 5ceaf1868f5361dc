# src/library_store/core/logging/handlers.py
"""
Handler factories for logging.dictConfig.

Each function returns a handler configuration dict. The formatter and filter
names they reference ("standard", "json", "correlation_id", "redact") are
declared by builder.make_dict_config.
"""

from pathlib import Path

from library_store.config.settings import Settings

_FILTERS = ["correlation_id", "redact"]


def get_console_handler(settings: Settings) -> dict:
    return {
        "class": "logging.StreamHandler",
        "formatter": "json" if settings.LOG_FORMAT == "json" else "standard",
        "level": settings.LOG_LEVEL,
        "filters": list(_FILTERS),
        "stream": "ext://sys.stdout",
    }


def get_file_handler(settings: Settings) -> dict:
    file_path = str(Path(settings.LOG_DIR) / "library.log")
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "formatter": "json" if settings.LOG_FORMAT == "json" else "standard",
        "level": settings.LOG_LEVEL,
        "filename": file_path,
        "maxBytes": settings.LOG_MAX_BYTES,
        "backupCount": settings.LOG_BACKUP_COUNT,
        "encoding": "utf-8",
        "filters": list(_FILTERS),
    }


# Errors also go to their own rotating file, always as JSON.
def get_error_file_handler(settings: Settings) -> dict:
    error_file_path = str(Path(settings.LOG_DIR) / "errors.log")
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "formatter": "json",
        "level": "ERROR",
        "filename": error_file_path,
        "maxBytes": settings.LOG_MAX_BYTES,
        "backupCount": settings.LOG_BACKUP_COUNT,
        "encoding": "utf-8",
        "filters": list(_FILTERS),
    }


def get_error_console_handler(settings: Settings) -> dict:
    return {
        "class": "logging.StreamHandler",
        "formatter": "json",
        "level": "ERROR",
        "filters": list(_FILTERS),
    }
