from .base import Base
from .session import (
    create_engine_from_settings,
    create_schema,
    drop_schema,
    get_async_session,
    get_engine,
    get_sessionmaker,
    make_sessionmaker,
    session_scope,
)

__all__ = [
    "Base",
    "create_engine_from_settings",
    "create_schema",
    "drop_schema",
    "get_async_session",
    "get_engine",
    "get_sessionmaker",
    "make_sessionmaker",
    "session_scope",
]
