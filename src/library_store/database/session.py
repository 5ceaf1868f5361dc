"""
Connection source for the repositories.

Provides the async engine, the session factory and a transactional scope.
Repositories never commit; whoever owns the session decides when the unit of
work ends (see `session_scope`).
"""

import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from library_store.config import Settings, get_settings
from library_store.database.base import Base

logger = logging.getLogger(__name__)


def _configure_sqlite(engine: AsyncEngine) -> None:
    """
    Let SQLAlchemy own SQLite transaction boundaries.

    The sqlite3 driver normally emits BEGIN lazily and COMMITs behind our back,
    which breaks SAVEPOINTs. Disabling that and issuing `BEGIN IMMEDIATE`
    ourselves makes savepoints work and makes concurrent writers queue on the
    busy timeout instead of failing with a lock upgrade deadlock.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_from_settings(settings: Settings | None = None, url: str | None = None) -> AsyncEngine:
    """
    Build an AsyncEngine for `url` (or `settings.DATABASE_URL`).

    SQLite URLs get the transaction-control hooks from `_configure_sqlite`
    and a busy timeout taken from settings.
    """
    settings = settings or get_settings()
    database_url = make_url(url or settings.DATABASE_URL)

    connect_args: dict = {}
    is_sqlite = database_url.get_backend_name() == "sqlite"
    if is_sqlite:
        connect_args["timeout"] = settings.SQLITE_BUSY_TIMEOUT

    engine = create_async_engine(
        database_url,
        echo=settings.SQLALCHEMY_ECHO,
        pool_pre_ping=settings.DB_POOL_PRE_PING,
        connect_args=connect_args,
    )

    if is_sqlite:
        _configure_sqlite(engine)

    logger.debug(
        "db.engine.created",
        extra={"backend": database_url.get_backend_name(), "driver": database_url.get_driver_name()},
    )
    return engine


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@lru_cache()
def get_engine() -> AsyncEngine:
    return create_engine_from_settings()


@lru_cache()
def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    return make_sessionmaker(get_engine())


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session and make sure it is closed afterwards."""
    async with get_sessionmaker()() as session:
        yield session


@asynccontextmanager
async def session_scope(
    sessionmaker: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Transactional scope around a series of repository calls.

    Commits when the block exits normally, rolls back and re-raises otherwise.

    Usage:
        async with session_scope() as db:
            books = BookRepository(db)
            await books.decrease_available_copies(book_id)
    """
    maker = sessionmaker or get_sessionmaker()
    async with maker() as session:
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise


async def create_schema(engine: AsyncEngine) -> None:
    """Create every table known to `Base.metadata` (local bootstrap and tests)."""
    # Import models so they are registered with Base.metadata.
    from library_store import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_schema(engine: AsyncEngine) -> None:
    from library_store import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
