"""Database connection and session management."""

import time

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from holdgate.config import settings
from holdgate.observability.metrics import metrics


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


def _attach_sqlite_locking(target_engine: AsyncEngine) -> None:
    """Make every SQLite transaction take the write lock up front.

    pysqlite's implicit BEGIN is disabled and replaced with BEGIN IMMEDIATE,
    so concurrent units of work serialize on the database instead of
    deadlocking on lock upgrade. SAVEPOINTs also work correctly this way.
    """
    sync_engine = target_engine.sync_engine

    @event.listens_for(sync_engine, "connect")
    def on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(sync_engine, "begin")
    def on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _attach_query_metrics(target_engine: AsyncEngine) -> None:
    """Attach SQLAlchemy event listeners for query metrics."""
    sync_engine = target_engine.sync_engine
    if getattr(sync_engine, "_holdgate_metrics_attached", False):
        return

    @event.listens_for(sync_engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info["query_start_time"] = time.perf_counter()

    @event.listens_for(sync_engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        start_time = conn.info.pop("query_start_time", None)
        if start_time is None:
            return
        metrics.inc_counter("db.query.count")
        metrics.observe("db.query.duration_ms", (time.perf_counter() - start_time) * 1000.0)

    sync_engine._holdgate_metrics_attached = True


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine configured for the URL's dialect."""
    if database_url.startswith("sqlite"):
        new_engine = create_async_engine(
            database_url,
            echo=echo,
            connect_args={"timeout": 30},
        )
        _attach_sqlite_locking(new_engine)
    else:
        new_engine = create_async_engine(
            database_url,
            echo=echo,
            pool_pre_ping=True,
            pool_size=20,
            max_overflow=10,
        )
    _attach_query_metrics(new_engine)
    return new_engine


def build_session_factory(target_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        target_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# Default engine and session factory
engine = build_engine(settings.database_url, echo=settings.debug)
async_session_factory = build_session_factory(engine)


async def init_db(target_engine: AsyncEngine | None = None) -> None:
    """Create tables (development and tests; production uses alembic)."""
    # Register table metadata
    from holdgate.db import tables  # noqa: F401

    async with (target_engine or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()

