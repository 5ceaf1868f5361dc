# src/library_store/core/logging/filters.py
"""
Logging filters.

CorrelationIdFilter stamps every record with the id of the unit of work that
produced it, so the statements of one repository call sequence can be grouped
in the logs. The id lives in a ContextVar, which follows asyncio tasks across
awaits. Whoever opens a unit of work (a request handler, a job runner, a test)
calls `set_correlation_id()`; the repositories never set it themselves.

RedactFilter masks values of sensitive attributes passed through `extra=`.
Repository logs carry user-supplied values such as emails and phone numbers,
which must not end up in log files verbatim.
"""

import logging
from logging import LogRecord
import contextvars
import re

_correlation_id_ctx: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)


def set_correlation_id(correlation_id: str | None):
    """
    Set the correlation id in the current context.

    Returns:
        token: contextvars.Token which can be passed to reset_correlation_id(token)
    """
    return _correlation_id_ctx.set(correlation_id)


def reset_correlation_id(token) -> None:
    _correlation_id_ctx.reset(token)


def get_correlation_id() -> str | None:
    return _correlation_id_ctx.get()


class CorrelationIdFilter(logging.Filter):
    """
    Guarantee every LogRecord has a `correlation_id` attribute.

    An explicit `extra={"correlation_id": ...}` wins, then the context value,
    then the sentinel "-" so `%(correlation_id)s` in format strings never fails.
    """

    def filter(self, record: LogRecord) -> bool:
        record.correlation_id = (
            getattr(record, "correlation_id", None) or get_correlation_id() or "-"
        )
        return True


REDACTED = "***REDACTED***"

_EMAIL_RE = re.compile(r"([A-Za-z0-9._%+-])[A-Za-z0-9._%+-]*@([A-Za-z0-9.-]+)")


def mask_email(value: str) -> str:
    """'jane.doe@example.com' -> 'j***@example.com'"""
    return _EMAIL_RE.sub(r"\1***@\2", value)


class RedactFilter(logging.Filter):
    SENSITIVE = {"password", "secret", "token", "access_token", "refresh_token", "authorization", "phone"}
    PARTIAL = {"email"}

    def filter(self, record: LogRecord) -> bool:
        for key in list(record.__dict__.keys()):
            lowered = key.lower()
            if lowered in self.SENSITIVE:
                record.__dict__[key] = REDACTED
            elif lowered in self.PARTIAL and isinstance(record.__dict__[key], str):
                record.__dict__[key] = mask_email(record.__dict__[key])
        return True
