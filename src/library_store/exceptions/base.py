"""
Repository-level exceptions.

These are the errors callers see. Raw driver/SQLAlchemy errors never leave the
repository layer; they are classified (see integrity_classifier.py) and mapped
(see translator.py) into one of the classes below.
"""

from typing import Iterable


class RepositoryError(Exception):
    """
    Base exception for repository errors.

    - message: human-friendly message (safe to show to clients)
    - fields: optional list of field names related to the error (e.g., ['email'])
    - constraint: optional DB constraint name (for logs only)
    - error_code: canonical short code (e.g., 'duplicate', 'check_violation')
    """

    def __init__(self, message: str, *, fields: Iterable[str] | None = None,
                 constraint: str | None = None, error_code: str | None = None):
        super().__init__(message)
        self.message = message
        self.fields = list(fields) if fields else None
        self.constraint = constraint
        self.error_code = error_code

    def __str__(self) -> str:
        base = self.message
        parts = []
        if self.fields:
            parts.append(f"fields: {', '.join(self.fields)}")
        if self.constraint:
            parts.append(f"constraint: {self.constraint}")
        if self.error_code:
            parts.append(f"code: {self.error_code}")
        if parts:
            return f"{base} ({'; '.join(parts)})"
        return base

    def to_payload(self) -> dict:
        """
        Structured, JSON-serializable view of the error:
            {"detail": "...", "code": "duplicate", "fields": ["username"]}
        The constraint name is left out on purpose; it is a storage detail.
        """
        payload = {"detail": self.message}
        if self.error_code:
            payload["code"] = self.error_code
        if self.fields:
            payload["fields"] = list(self.fields)
        return payload


class ConstraintViolation(RepositoryError):
    """A write rejected by a uniqueness, value-domain, nullability or length rule."""

    def __init__(self, message: str, *, field: str | None, constraint: str | None = None,
                 error_code: str | None = None):
        super().__init__(message, fields=[field] if field else None,
                         constraint=constraint, error_code=error_code)
        self.field = field


class DuplicateKey(ConstraintViolation):
    def __init__(self, field: str | None, *, model: str = "Record", constraint: str | None = None):
        target = f" for field: {field}" if field else ""
        super().__init__(f"{model} already exists{target}", field=field,
                         constraint=constraint, error_code="duplicate")


class CheckViolation(ConstraintViolation):
    def __init__(self, field: str | None, rule: str | None = None, *, model: str = "Record",
                 constraint: str | None = None):
        target = f" on field: {field}" if field else ""
        super().__init__(f"{model} business rule violated{target}", field=field,
                         constraint=constraint, error_code="check_violation")
        self.rule = rule


class NotNullViolation(ConstraintViolation):
    def __init__(self, field: str | None, *, model: str = "Record", constraint: str | None = None):
        target = f": {field}" if field else ""
        super().__init__(f"Missing required field for {model}{target}", field=field,
                         constraint=constraint, error_code="not_null")


class LengthViolation(ConstraintViolation):
    def __init__(self, field: str | None, *, model: str = "Record", constraint: str | None = None):
        target = f": {field}" if field else ""
        super().__init__(f"Value too long for {model}{target}", field=field,
                         constraint=constraint, error_code="too_long")


class StoreUnavailable(RepositoryError):
    """The store could not be reached or dropped the connection. Never retried here."""

    def __init__(self, message: str = "Relational store unavailable"):
        super().__init__(message, error_code="store_unavailable")


__all__ = [
    "RepositoryError",
    "ConstraintViolation",
    "DuplicateKey",
    "CheckViolation",
    "NotNullViolation",
    "LengthViolation",
    "StoreUnavailable",
]
