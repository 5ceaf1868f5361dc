"""
Core pytest configuration for the entire test suite.

Database tests get a fresh schema per test: against `TEST_DATABASE_URL` when it
is set (e.g. PostgreSQL in CI), otherwise against a SQLite file under the
test's tmp_path. Repositories never commit, so `db_session` simply rolls back
at the end; tests that need committed data from several sessions (races) use
`session_factory` and `session_scope` instead.

Domain-specific fixtures live in tests/test_fixtures/ and are re-exported here.
"""

from __future__ import annotations

import os
import logging
from typing import AsyncGenerator

# -------------------------------
# Early logging tuning
# -------------------------------
# Silence noisy third-party loggers before anything imports them.
NOISY_LOGGERS = (
    "faker",
    "faker.factory",
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.engine.Engine",
    "aiosqlite",
    "asyncio",
)
for _name in NOISY_LOGGERS:
    logging.getLogger(_name).setLevel(logging.WARNING)

import pytest
from pytest import FixtureRequest
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from library_store.config import get_settings
from library_store.core.logging import reset_correlation_id, set_correlation_id, setup_logging
from library_store.database import (
    create_engine_from_settings,
    create_schema,
    drop_schema,
    make_sessionmaker,
)

settings = get_settings()
logger = logging.getLogger(__name__)


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """Install the library's dictConfig logging once for the whole session."""
    setup_logging(settings)
    yield


@pytest.fixture(autouse=True)
def correlation_id(request: FixtureRequest):
    """Tag every log line emitted during a test with the test's name."""
    token = set_correlation_id(request.node.name)
    yield request.node.name
    reset_correlation_id(token)


# ------------------------------------------------------------------------------------------------
# Test database
# ------------------------------------------------------------------------------------------------

def safe_log_db_url(db_url: str) -> str:
    """Database URL with the password masked, for log output."""
    return make_url(db_url).render_as_string(hide_password=True)


def get_test_database_url(tmp_path) -> str:
    """
    1. `TEST_DATABASE_URL` environment variable (CI override)
    2. a SQLite file private to the current test
    """
    if test_url := os.getenv("TEST_DATABASE_URL"):
        return test_url
    return f"sqlite+aiosqlite:///{tmp_path / 'library_test.db'}"


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    url = get_test_database_url(tmp_path)
    logger.debug("Using test DB: %s", safe_log_db_url(url))

    engine = create_engine_from_settings(settings, url=url)
    await drop_schema(engine)
    await create_schema(engine)
    try:
        yield engine
    finally:
        await drop_schema(engine)
        await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_sessionmaker(engine)


@pytest.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """
    One session per test, rolled back afterwards.

    Holding this session keeps a write transaction open (on SQLite the whole
    database is locked), so do not combine it with `session_factory` sessions
    that write in the same test.
    """
    session = session_factory()
    try:
        yield session
        await session.rollback()
    finally:
        await session.close()


from .test_fixtures.repository_fixtures import (  # noqa: E402,F401
    manual_time,
    frozen_clock,
    user_repository,
    book_repository,
    make_user,
    make_book,
    create_user,
    create_book,
)
