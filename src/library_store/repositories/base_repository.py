"""
Base repository class providing the operations shared by every model.

Model-specific repositories inherit from `BaseRepository` and add their own
lookups and state transitions on top of it.

Conventions every repository follows:
  - The session is injected and owned by the caller. Repositories flush, never
    commit; `session_scope()` or the caller decides when the unit of work ends.
  - Every write runs inside `db_error_handler`, i.e. inside a SAVEPOINT, so a
    rejected statement rolls back alone and leaves the caller's transaction
    usable. Store failures surface as the typed errors in
    `library_store.exceptions`.
  - A missing row is `None` (lookups) or `False` (writes by id), never an
    exception.
  - Reads use `populate_existing` so instances already in the identity map
    are refreshed from the row instead of returning stale in-memory state.
"""

import logging
import time
from datetime import datetime
from enum import Enum
from typing import Any, Generic, Type, TypeVar

from sqlalchemy import delete, func, inspect, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from library_store.core.clock import AuditClock, default_clock
from library_store.database.base import Base
from library_store.exceptions import RepositoryError, db_error_handler, store_error_handler

# Type variable for the model class
ModelType = TypeVar("ModelType", bound=Base)

logger = logging.getLogger(__name__)


def _plain(value: Any) -> Any:
    """Enum members are stored by value."""
    return value.value if isinstance(value, Enum) else value


class BaseRepository(Generic[ModelType]):
    """
    Generic repository over a single-column primary key model.

    Subclasses set `mutable_fields`, the columns `update()` writes by identity.
    """

    mutable_fields: tuple[str, ...] = ()

    def __init__(self, model: Type[ModelType], db: AsyncSession, clock: AuditClock | None = None):
        """
        Args:
            model: The SQLAlchemy model class (e.g. `Book`, not `Book()`).
            db: The async session the repository works in.
            clock: Source of created_at/updated_at values; the process-wide
                default clock unless one is injected (tests freeze it).
        """
        self.model = model
        self.db = db
        self.clock = clock or default_clock
        self.table = model.__table__
        pk_column = self.table.primary_key.columns.values()[0]
        self.pk_name = pk_column.key
        self.pk = getattr(model, self.pk_name)

    @property
    def model_name(self) -> str:
        return self.model.__name__

    # =================================================================================================================
    # Create
    # =================================================================================================================

    async def create(self, entity: ModelType) -> ModelType:
        """
        Insert `entity` and return it with store-assigned fields loaded.

        Attributes left as None are omitted from the INSERT, so server defaults
        apply and a missing required column is reported as NotNullViolation.

        Raises:
            DuplicateKey, CheckViolation, NotNullViolation, LengthViolation,
            StoreUnavailable, RepositoryError
        """
        logger.debug(
            "repo.create.start",
            extra={"model": self.model_name, "operation": "create"},
        )

        self._normalize(entity)
        stamp = self.clock.tick()
        entity.created_at = stamp
        entity.updated_at = stamp

        start = time.perf_counter()
        async with db_error_handler(self.db, self.table, "create", self.model_name, self._column_values(entity)):
            self.db.add(entity)
            await self.db.flush()
            await self.db.refresh(entity)

        logger.info(
            "repo.create.success",
            extra={
                "model": self.model_name,
                "operation": "create",
                "id": getattr(entity, self.pk_name),
                "duration_ms": int((time.perf_counter() - start) * 1000),
            },
        )
        return entity

    # =================================================================================================================
    # Read
    # =================================================================================================================

    async def find_by_id(self, entity_id: int) -> ModelType | None:
        """Return the row with primary key `entity_id`, or None."""
        return await self._find_one_by(self.pk, entity_id, "find_by_id")

    async def find_all(self, offset: int = 0, limit: int | None = None) -> list[ModelType]:
        """
        All rows ordered by primary key, optionally paginated.

        Ordering by primary key keeps pages stable between calls.
        """
        query = select(self.model).order_by(self.pk).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        entities = await self._find_many(query, "find_all")
        logger.debug(
            "repo.find_all.success",
            extra={"model": self.model_name, "count": len(entities), "offset": offset, "limit": limit},
        )
        return entities

    async def count_all(self) -> int:
        return await self._count(select(func.count()).select_from(self.model), "count_all")

    # =================================================================================================================
    # Update
    # =================================================================================================================

    async def update(self, entity: ModelType) -> bool:
        """
        Write every mutable field of `entity` to the row with the same identity.

        Returns False when no row has that identity. `updated_at` always moves
        strictly past the row's previous value.

        `entity` may be attached to this session or not. Pending attribute
        changes of an attached entity are written by this statement rather
        than by an ORM flush; afterwards the entity is reloaded from the row.
        """
        entity_id = getattr(entity, self.pk_name)
        if entity_id is None:
            logger.info("repo.update.no_identity", extra={"model": self.model_name})
            return False

        self._normalize(entity)
        values = {name: getattr(entity, name) for name in self.mutable_fields}
        attached = inspect(entity).persistent and entity in self.db
        if attached:
            # Discard pending changes so the SAVEPOINT does not flush them first.
            self.db.expire(entity, list(self.mutable_fields))

        try:
            async with db_error_handler(self.db, self.table, "update", self.model_name, values):
                stamped = await self._write_by_id(entity_id, values)
        except RepositoryError:
            if attached:
                await self._reload_or_restore(entity, values)
            raise

        if stamped is None:
            if attached:
                self._restore(entity, values)
            logger.info(
                "repo.update.not_found",
                extra={"model": self.model_name, "operation": "update", "id": entity_id},
            )
            return False

        if attached:
            await self._reload(entity)
        else:
            set_committed_value(entity, "updated_at", stamped)

        logger.info(
            "repo.update.success",
            extra={"model": self.model_name, "operation": "update", "id": entity_id},
        )
        return True

    # =================================================================================================================
    # Delete
    # =================================================================================================================

    async def delete(self, entity_id: int) -> bool:
        """Hard-delete the row. True if a row existed and was removed."""
        stmt = (
            delete(self.model)
            .where(self.pk == entity_id)
            .execution_options(synchronize_session="fetch")
        )
        async with db_error_handler(self.db, self.table, "delete", self.model_name):
            result = await self.db.execute(stmt)

        deleted = result.rowcount > 0
        if deleted:
            logger.info(
                "repo.delete.success",
                extra={"model": self.model_name, "operation": "delete", "id": entity_id},
            )
        else:
            logger.info(
                "repo.delete.not_found",
                extra={"model": self.model_name, "operation": "delete", "id": entity_id},
            )
        return deleted

    # =================================================================================================================
    # Helpers for subclasses
    # =================================================================================================================

    def _column_values(self, entity: ModelType) -> dict[str, Any]:
        return {column.key: getattr(entity, column.key, None) for column in self.table.columns}

    def _normalize(self, entity: ModelType) -> None:
        """Replace enum members on mutable fields with their stored values."""
        for name in self.mutable_fields:
            value = getattr(entity, name)
            if isinstance(value, Enum):
                setattr(entity, name, _plain(value))

    async def _find_one_by(self, column, value: Any, operation: str) -> ModelType | None:
        query = (
            select(self.model)
            .where(column == value)
            .execution_options(populate_existing=True)
        )
        async with store_error_handler(self.table, operation, self.model_name):
            result = await self.db.execute(query)
            entity = result.scalar_one_or_none()
        logger.debug(
            f"repo.{operation}.success",
            extra={"model": self.model_name, "found": entity is not None},
        )
        return entity

    async def _find_many(self, query, operation: str) -> list[ModelType]:
        query = query.execution_options(populate_existing=True)
        async with store_error_handler(self.table, operation, self.model_name):
            result = await self.db.execute(query)
            return list(result.scalars().all())

    async def _count(self, query, operation: str) -> int:
        async with store_error_handler(self.table, operation, self.model_name):
            result = await self.db.execute(query)
            count = result.scalar_one() or 0
        logger.debug(f"repo.{operation}.success", extra={"model": self.model_name, "count": count})
        return count

    async def _write_by_id(self, entity_id: int, values: dict[str, Any]) -> datetime | None:
        """
        UPDATE one row by primary key, stamping `updated_at` past its previous value.

        Must run inside `db_error_handler`. Returns the stored `updated_at`, or
        None when no row has that id.
        """
        previous = await self._lock_updated_at(entity_id)
        if previous is None:
            return None

        values = {name: _plain(value) for name, value in values.items()}
        values["updated_at"] = self.clock.tick(after=previous)
        stmt = (
            update(self.model)
            .where(self.pk == entity_id)
            .values(**values)
            .returning(self.model.updated_at)
            .execution_options(synchronize_session=False)
        )
        return (await self.db.execute(stmt)).scalar_one()

    async def _execute_conditional(self, stmt, operation: str, entity_id: int) -> bool:
        """
        Run a single guarded UPDATE and report whether it changed the row.

        The guard lives in the statement's WHERE clause, so the bound check and
        the write are one atomic step in the store. `updated_at` is stamped
        past the row's previous value, as for `update()`.
        """
        async with db_error_handler(self.db, self.table, operation, self.model_name):
            previous = await self._lock_updated_at(entity_id)
            if previous is None:
                return False
            stmt = stmt.values(updated_at=self.clock.tick(after=previous)).execution_options(
                synchronize_session=False
            )
            result = await self.db.execute(stmt)
        changed = result.rowcount == 1
        if changed:
            await self._refresh_cached(entity_id)
        return changed

    async def _lock_updated_at(self, entity_id: int) -> datetime | None:
        """
        Read the row's `updated_at` with SELECT ... FOR UPDATE, or None if there is no row.

        Concurrent writers to the same row queue up behind the lock.
        """
        stmt = select(self.model.updated_at).where(self.pk == entity_id).with_for_update()
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def _refresh_cached(self, entity_id: int) -> None:
        """Reload the identity-mapped instance for `entity_id`, if this session holds one."""
        key = self.db.identity_key(self.model, entity_id)
        cached = self.db.identity_map.get(key)
        if cached is not None:
            await self._reload(cached)

    async def _reload(self, entity: ModelType) -> None:
        async with store_error_handler(self.table, "refresh", self.model_name):
            await self.db.refresh(entity)

    @staticmethod
    def _restore(entity: ModelType, values: dict[str, Any]) -> None:
        for name, value in values.items():
            set_committed_value(entity, name, value)

    async def _reload_or_restore(self, entity: ModelType, values: dict[str, Any]) -> None:
        """
        Leave `entity` readable after a failed write: the stored row when the
        store answers, otherwise the values the caller tried to write.
        """
        try:
            await self._reload(entity)
        except RepositoryError:
            logger.warning(
                "repo.update.reload_failed",
                extra={"model": self.model_name, "id": getattr(entity, self.pk_name)},
            )
            self._restore(entity, values)

