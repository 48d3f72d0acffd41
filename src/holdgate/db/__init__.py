"""Database layer."""

from holdgate.db.base import (
    Base,
    async_session_factory,
    build_engine,
    build_session_factory,
    close_db,
    engine,
    init_db,
)

__all__ = [
    "Base",
    "async_session_factory",
    "build_engine",
    "build_session_factory",
    "close_db",
    "engine",
    "init_db",
]
