"""Async engine and session factory wiring."""

from __future__ import annotations

from typing import AsyncIterator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from engagecore_api.core.settings import settings


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy own BEGIN on SQLite so SAVEPOINT blocks nest correctly."""

    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):  # noqa: ANN001
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):  # noqa: ANN001
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str | None = None, *, echo: bool | None = None) -> AsyncEngine:
    engine = create_async_engine(
        database_url or settings.database_url,
        echo=settings.database_echo if echo is None else echo,
        future=True,
    )
    enable_sqlite_savepoints(engine)
    return engine


engine = build_engine()
async_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a request-scoped session."""

    async with async_session() as session:
        yield session


__all__ = ["async_session", "build_engine", "enable_sqlite_savepoints", "engine", "get_session"]
