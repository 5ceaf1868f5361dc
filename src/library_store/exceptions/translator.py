"""
Map classified store failures to caller-facing errors.

integrity_classifier.py tells us what kind of rule failed and whatever name
the store attached to it. Here that is resolved against the target table's
metadata into the field that caused it:

| Store failure        | Resolved through                                   | Raised              |
| -------------------- | -------------------------------------------------- | ------------------- |
| unique               | reported columns, or UniqueConstraint/Index by name | DuplicateKey        |
| not null             | reported column                                    | NotNullViolation    |
| check                | CheckConstraint.info {"field", "rule"}             | CheckViolation      |
| check, rule=max_length | same                                             | LengthViolation     |
| string too long      | bound parameters vs. String(n) column lengths      | LengthViolation     |
| anything else        |                                                    | RepositoryError     |
"""

import logging
from collections.abc import Mapping
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import CheckConstraint, Index, String, Table, UniqueConstraint
from sqlalchemy.exc import (
    DataError,
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.ext.asyncio import AsyncSession

from library_store.database.base import RULE_MAX_LENGTH
from .base import (
    CheckViolation,
    DuplicateKey,
    LengthViolation,
    NotNullViolation,
    RepositoryError,
    StoreUnavailable,
)
from .integrity_classifier import FailureKind, classify_integrity_error

logger = logging.getLogger(__name__)


# -----------------------
# Table metadata helpers
# -----------------------

def find_constraint(table: Table, name: str | None):
    """Return the constraint or index of `table` called `name`, if any."""
    if not name:
        return None
    for item in [*table.constraints, *table.indexes]:
        if item.name is not None and str(item.name) == name:
            return item
    return None


def _iter_param_sets(params: Any) -> list[Mapping]:
    if isinstance(params, Mapping):
        return [params]
    if isinstance(params, (list, tuple)):
        return [p for p in params if isinstance(p, Mapping)]
    return []


def find_over_length_column(table: Table, params: Any) -> str | None:
    """
    First String(n) column of `table` whose bound value is longer than n.

    PostgreSQL reports "value too long for type character varying(n)" without
    saying which column; the statement parameters do.
    """
    for param_set in _iter_param_sets(params):
        for column in table.columns:
            length = getattr(column.type, "length", None)
            if not isinstance(column.type, String) or not length:
                continue
            value = param_set.get(column.key, param_set.get(column.name))
            if isinstance(value, str) and len(value) > length:
                return column.name
    return None


def _columns_of(item) -> list[str]:
    if isinstance(item, (UniqueConstraint, Index)):
        return [c.name for c in item.columns]
    return []


# -----------------------
# Translator
# -----------------------

def translate_constraint_error(
    exc: DBAPIError, table: Table, model_name: str | None = None, values: Mapping | None = None
) -> RepositoryError:
    """
    Turn a rejected write against `table` into a typed repository error.

    The error is returned rather than raised so callers can chain it:
        raise translate_constraint_error(exc, User.__table__, "User") from exc

    `values` are the column values the statement tried to write. They are
    used to find an over-long column when the store does not name it;
    otherwise the bound parameters are inspected, which only works for
    drivers that bind by name.
    """
    failure = classify_integrity_error(exc)
    model = model_name or table.name
    constraint_name = failure.constraint_name
    item = find_constraint(table, constraint_name)

    if failure.kind is FailureKind.UNIQUE:
        columns = failure.columns or _columns_of(item)
        field = columns[0] if columns else None
        logger.info(
            "translator.duplicate_detected",
            extra={"model": model, "fields": columns, "constraint": constraint_name},
        )
        return DuplicateKey(field, model=model, constraint=constraint_name)

    if failure.kind is FailureKind.NOT_NULL:
        field = failure.columns[0] if failure.columns else None
        logger.info(
            "translator.not_null_violation",
            extra={"model": model, "field": field, "constraint": constraint_name},
        )
        return NotNullViolation(field, model=model, constraint=constraint_name)

    if failure.kind is FailureKind.CHECK:
        info = item.info if isinstance(item, CheckConstraint) else {}
        field = info.get("field")
        rule = info.get("rule")
        logger.info(
            "translator.check_violation",
            extra={"model": model, "field": field, "rule": rule, "constraint": constraint_name},
        )
        if rule == RULE_MAX_LENGTH:
            return LengthViolation(field, model=model, constraint=constraint_name)
        return CheckViolation(field, rule, model=model, constraint=constraint_name)

    if failure.kind is FailureKind.STRING_TOO_LONG:
        if failure.columns:
            field = failure.columns[0]
        else:
            field = find_over_length_column(table, values if values is not None else exc.params)
        logger.info("translator.length_violation", extra={"model": model, "field": field})
        return LengthViolation(field, model=model)

    raw = str(exc.orig) if exc.orig is not None else str(exc)
    logger.warning(
        "translator.unknown_integrity_error",
        extra={"model": model, "constraint": constraint_name},
    )
    logger.debug("translator.unknown_integrity_raw", extra={"model": model, "raw": raw})
    return RepositoryError(f"{model} database integrity error.", constraint=constraint_name)


def _is_connectivity_failure(exc: BaseException) -> bool:
    if isinstance(exc, (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError, OSError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


# -----------------------
# Async context managers to DRY error handling in repositories
# -----------------------

@asynccontextmanager
async def db_error_handler(
    db: AsyncSession,
    table: Table,
    operation: str,
    model_name: str | None = None,
    values: Mapping | None = None,
) -> AsyncIterator[None]:
    """
    Run a write as one atomic unit inside a SAVEPOINT and map its failures.

    Usage:
        async with db_error_handler(self.db, self.table, "create", "User"):
            ... statements ...

    A rejected statement rolls back only the SAVEPOINT, so the caller's
    session stays usable and no partial row survives.
    """
    model = model_name or table.name
    try:
        async with db.begin_nested():
            yield
    except (IntegrityError, DataError) as exc:
        if _is_connectivity_failure(exc):
            logger.error("repo.store_unavailable", extra={"model": model, "operation": operation})
            raise StoreUnavailable() from exc
        raise translate_constraint_error(exc, table, model, values) from exc
    except RepositoryError:
        raise
    except (SQLAlchemyError, OSError) as exc:
        if _is_connectivity_failure(exc):
            logger.error("repo.store_unavailable", extra={"model": model, "operation": operation})
            raise StoreUnavailable() from exc
        logger.exception("Unexpected DB error for %s", model, extra={"model": model, "operation": operation})
        raise RepositoryError(f"Failed to {operation} {model}") from exc


@asynccontextmanager
async def store_error_handler(
    table: Table, operation: str, model_name: str | None = None
) -> AsyncIterator[None]:
    """Read-side counterpart of `db_error_handler`: no SAVEPOINT, same error mapping."""
    model = model_name or table.name
    try:
        yield
    except (SQLAlchemyError, OSError) as exc:
        if _is_connectivity_failure(exc):
            logger.error("repo.store_unavailable", extra={"model": model, "operation": operation})
            raise StoreUnavailable() from exc
        logger.exception("Unexpected DB error for %s", model, extra={"model": model, "operation": operation})
        raise RepositoryError(f"Failed to {operation} {model}") from exc
