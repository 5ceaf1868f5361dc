"""
Low-level classification of store failures.

A rejected write reaches us as a SQLAlchemy `IntegrityError` or `DataError`
wrapping a driver exception. This module answers "what kind of rule failed,
and what did the store say about it" without deciding anything about the
caller-facing error; that is translator.py's job.

PostgreSQL drivers expose a SQLSTATE and structured diagnostics, which are
preferred. SQLite and MySQL only give a message, which is parsed as a
fallback.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy.exc import DBAPIError

logger = logging.getLogger(__name__)


class FailureKind(str, Enum):
    UNIQUE = "unique"
    NOT_NULL = "not_null"
    CHECK = "check"
    STRING_TOO_LONG = "string_too_long"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ConstraintFailure:
    """What the store reported about a rejected statement."""
    kind: FailureKind
    constraint_name: str | None = None
    columns: list[str] = field(default_factory=list)


# =================================================================================================================
# Postgres error code mapping
# =================================================================================================================

# https://www.postgresql.org/docs/current/errcodes-appendix.html
class PostgresErrorCodes(str, Enum):
    UNIQUE_VIOLATION = "23505"
    NOT_NULL_VIOLATION = "23502"
    CHECK_VIOLATION = "23514"
    STRING_DATA_RIGHT_TRUNCATION = "22001"


PGCODE_KIND_MAP = {
    PostgresErrorCodes.UNIQUE_VIOLATION.value: FailureKind.UNIQUE,
    PostgresErrorCodes.NOT_NULL_VIOLATION.value: FailureKind.NOT_NULL,
    PostgresErrorCodes.CHECK_VIOLATION.value: FailureKind.CHECK,
    PostgresErrorCodes.STRING_DATA_RIGHT_TRUNCATION.value: FailureKind.STRING_TOO_LONG,
}


_KEY_DETAIL = re.compile(r"key \((?P<cols>[^)]+)\)=", re.I)


def _diagnostic(orig, attr: str) -> str | None:
    """
    Read a diagnostic attribute from whichever place the driver keeps it:
    psycopg exposes `orig.diag.<attr>`, asyncpg exposes `<attr>` on the
    original asyncpg exception that SQLAlchemy chains as `__cause__`.
    """
    diag = getattr(orig, "diag", None)
    value = getattr(diag, attr, None) if diag is not None else None
    if value:
        return value
    cause = getattr(orig, "__cause__", None)
    value = getattr(cause, attr, None) if cause is not None else None
    return value or None


def _classify_from_postgres_diag(orig) -> ConstraintFailure | None:
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if not pgcode:
        return None

    constraint_name = _diagnostic(orig, "constraint_name")
    column_name = _diagnostic(orig, "column_name")
    kind = PGCODE_KIND_MAP.get(pgcode)

    if kind is None:
        logger.warning(
            "Unknown Postgres integrity error code encountered",
            extra={"pgcode": pgcode, "constraint_name": constraint_name},
        )
        return ConstraintFailure(FailureKind.UNKNOWN, constraint_name)

    columns = [column_name] if column_name else []
    if not columns and kind is FailureKind.UNIQUE:
        # DETAIL:  Key (email)=(a@b.com) already exists.
        detail = _diagnostic(orig, "message_detail") or _diagnostic(orig, "detail") or ""
        m = _KEY_DETAIL.search(detail)
        if m:
            columns = _split_qualified(m.group("cols"))

    logger.debug(
        "Postgres integrity diagnostic",
        extra={"pgcode": pgcode, "constraint_name": constraint_name, "columns": columns},
    )
    return ConstraintFailure(kind, constraint_name, columns)


# =================================================================================================================
# Message parsing (SQLite, MySQL, and Postgres drivers without diagnostics)
# =================================================================================================================

def _split_qualified(cols: str) -> list[str]:
    # 'users.email, users.username' -> ['email', 'username']
    return [c.split(".")[-1].strip().strip('"`') for c in re.split(r",\s*", cols.strip()) if c.strip()]


_MESSAGE_RULES: list[tuple[re.Pattern, FailureKind, str]] = [
    # SQLite
    (re.compile(r"UNIQUE constraint failed: (?P<cols>.+)$", re.I | re.M), FailureKind.UNIQUE, "cols"),
    (re.compile(r"NOT NULL constraint failed: (?P<cols>.+)$", re.I | re.M), FailureKind.NOT_NULL, "cols"),
    (re.compile(r"CHECK constraint failed: (?P<name>\w+)", re.I), FailureKind.CHECK, "name"),
    # Postgres
    (re.compile(r'violates unique constraint "(?P<name>[^"]+)"', re.I), FailureKind.UNIQUE, "name"),
    (re.compile(r'null value in column "(?P<cols>[^"]+)"', re.I), FailureKind.NOT_NULL, "cols"),
    (re.compile(r'violates check constraint "(?P<name>[^"]+)"', re.I), FailureKind.CHECK, "name"),
    (re.compile(r"value too long for type", re.I), FailureKind.STRING_TOO_LONG, ""),
    # MySQL
    (re.compile(r"Duplicate entry .* for key '(?:\w+\.)?(?P<name>[^']+)'", re.I), FailureKind.UNIQUE, "name"),
    (re.compile(r"Column '(?P<cols>[^']+)' cannot be null", re.I), FailureKind.NOT_NULL, "cols"),
    (re.compile(r"Check constraint '(?P<name>[^']+)' is violated", re.I), FailureKind.CHECK, "name"),
    (re.compile(r"Data too long for column '(?P<cols>[^']+)'", re.I), FailureKind.STRING_TOO_LONG, "cols"),
]


def _classify_from_message(msg: str) -> ConstraintFailure | None:
    for pattern, kind, group in _MESSAGE_RULES:
        m = pattern.search(msg)
        if not m:
            continue
        if group == "cols":
            return ConstraintFailure(kind, None, _split_qualified(m.group("cols")))
        if group == "name":
            return ConstraintFailure(kind, m.group("name"))
        return ConstraintFailure(kind)
    return None


def classify_integrity_error(exc: DBAPIError) -> ConstraintFailure:
    """
    Classify a SQLAlchemy IntegrityError/DataError into a ConstraintFailure.

    Postgres diagnostics are used when present; otherwise the driver message
    is parsed. When diagnostics name a kind but no constraint or column, the
    message is consulted to fill the gap.
    """
    orig = exc.orig
    msg = str(orig) if orig is not None else str(exc)

    failure = _classify_from_postgres_diag(orig)
    if failure is None:
        failure = _classify_from_message(msg)
        if failure is None:
            # Surface at WARNING for monitoring; the raw text stays at DEBUG.
            logger.warning("Unknown integrity error message encountered",
                           extra={"message_snippet": (msg or "")[:200]})
            logger.debug("Unknown integrity raw message", extra={"raw": msg})
            return ConstraintFailure(FailureKind.UNKNOWN)
        return failure

    if failure.kind is not FailureKind.UNKNOWN and not (failure.constraint_name or failure.columns):
        parsed = _classify_from_message(msg)
        if parsed is not None and parsed.kind is failure.kind:
            return parsed
    return failure
