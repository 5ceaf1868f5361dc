"""
Store-side refresh of `updated_at`.

Repositories stamp `updated_at` themselves through the AuditClock, but rows can
also be touched by writers that bypass them (ad-hoc SQL, maintenance jobs). On
PostgreSQL a BEFORE UPDATE trigger makes the store enforce the same rule: the
new value is never lower than the wall clock and always strictly above the
previous one.

SQLite has no equivalent that works on its text-encoded timestamps, so there
the AuditClock is the only mechanism.
"""

from sqlalchemy import DDL, Table, event

TOUCH_FUNCTION_NAME = "library_store_touch_updated_at"

_touch_function = DDL(
    f"""
CREATE OR REPLACE FUNCTION {TOUCH_FUNCTION_NAME}() RETURNS trigger AS $$
BEGIN
    NEW.updated_at := GREATEST(
        NEW.updated_at,
        clock_timestamp(),
        OLD.updated_at + interval '1 microsecond'
    );
    RETURN NEW;
END;
$$ LANGUAGE plpgsql
"""
).execute_if(dialect="postgresql")


def install_updated_at_trigger(table: Table) -> None:
    """Register DDL so that `table` gets the touch trigger right after CREATE TABLE."""
    trigger = DDL(
        "CREATE TRIGGER trg_%(table)s_touch_updated_at "
        "BEFORE UPDATE ON %(fullname)s "
        f"FOR EACH ROW EXECUTE FUNCTION {TOUCH_FUNCTION_NAME}()"
    ).execute_if(dialect="postgresql")

    event.listen(table, "after_create", _touch_function)
    event.listen(table, "after_create", trigger)
