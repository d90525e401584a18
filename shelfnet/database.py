"""
Async engine, session scope and the request-scoped ``get_db`` dependency.

Catalog and social writes rely on SAVEPOINTs (``session.begin_nested()``) to
settle duplicate-insert races, so SQLite engines are built with the driver's
own transaction handling switched off and ``BEGIN`` emitted explicitly.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, AsyncIterator

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from shelfnet.config import get_settings


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(dsn: str, **kwargs: Any) -> AsyncEngine:
    """Create an engine for ``dsn``; SQLite gets foreign keys and SAVEPOINT support."""
    if dsn.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = create_async_engine(dsn, **kwargs)
        _enable_sqlite_savepoints(engine)
        return engine

    settings = get_settings()
    kwargs.setdefault("pool_size", settings.db_pool_size)
    kwargs.setdefault("max_overflow", settings.db_max_overflow)
    kwargs.setdefault("pool_pre_ping", True)
    kwargs.setdefault("pool_recycle", 300)
    return create_async_engine(dsn, **kwargs)


engine = build_engine(get_settings().database_dsn)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession] = async_session,
) -> AsyncIterator[AsyncSession]:
    """One unit of work: commit on success, roll back on any error."""
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with session_scope() as session:
        yield session


async def create_tables(bind: AsyncEngine = engine) -> None:
    # registers every table on Base.metadata
    from shelfnet.models import activity, book, bookshelf, follow, reading, review, user  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ping(bind: AsyncEngine = engine) -> None:
    async with bind.connect() as conn:
        await conn.execute(text("SELECT 1"))
