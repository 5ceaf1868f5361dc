# library_store/
# │
# ├── exceptions/
# │   ├── __init__.py
# │   ├── base.py                    # Caller-facing errors (RepositoryError, DuplicateKey, ...)
# │   ├── integrity_classifier.py    # What the store reported (SQLSTATE, diagnostics, message)
# │   └── translator.py              # Resolve the field via table metadata, raise typed errors

from .base import (
    RepositoryError,
    ConstraintViolation,
    DuplicateKey,
    CheckViolation,
    NotNullViolation,
    LengthViolation,
    StoreUnavailable,
)
from .translator import translate_constraint_error, db_error_handler, store_error_handler

__all__ = [
    "RepositoryError",
    "ConstraintViolation",
    "DuplicateKey",
    "CheckViolation",
    "NotNullViolation",
    "LengthViolation",
    "StoreUnavailable",
    "translate_constraint_error",
    "db_error_handler",
    "store_error_handler",
]
