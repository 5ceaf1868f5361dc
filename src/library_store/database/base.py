"""
Declarative base for all SQLAlchemy ORM models, plus small helpers for the
named CHECK constraints the models declare.

Every CHECK constraint carries `info={"field": ..., "rule": ...}`. The
constraint translator reads that metadata back when the store rejects a row,
so the typed error can name the field without parsing provider text.
"""

from sqlalchemy import CheckConstraint
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


# Naming convention for constraints and indexes
Base.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "pk": "pk_%(table_name)s",
}

# Rule names used in CHECK constraint metadata.
RULE_MAX_LENGTH = "max_length"
RULE_ALLOWED_VALUES = "allowed_values"
RULE_NON_NEGATIVE = "non_negative"


def field_check(sqltext: str, *, name: str, field: str, rule: str) -> CheckConstraint:
    """Build a named CHECK constraint tagged with the field and rule it guards."""
    return CheckConstraint(sqltext, name=name, info={"field": field, "rule": rule})


def max_length_check(column: str, limit: int) -> CheckConstraint:
    """
    CHECK that `column` holds at most `limit` characters.

    VARCHAR(n) already limits length on PostgreSQL, but SQLite ignores the
    declared length, so the rule is spelled out for both.
    """
    return field_check(
        f"length({column}) <= {limit}",
        name=f"{column}_length",
        field=column,
        rule=RULE_MAX_LENGTH,
    )


def allowed_values_check(column: str, values: tuple[str, ...]) -> CheckConstraint:
    quoted = ", ".join(f"'{v}'" for v in values)
    return field_check(
        f"{column} IN ({quoted})",
        name=f"{column}_allowed",
        field=column,
        rule=RULE_ALLOWED_VALUES,
    )


def non_negative_check(column: str) -> CheckConstraint:
    return field_check(
        f"{column} >= 0",
        name=f"{column}_non_negative",
        field=column,
        rule=RULE_NON_NEGATIVE,
    )
