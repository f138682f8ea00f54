"""
core/database.py — async SQLAlchemy engine and session factory.

Nothing here is created at import time. The process entry point builds the
engine with create_engine(), hands the session factory to the services that
need it, and disposes of the engine on shutdown.

PostgreSQL runs through asyncpg with NullPool so each session gets its own
fresh connection (asyncpg raises "another operation is in progress" when a
pooled connection is shared across concurrent coroutines). SQLite runs
through aiosqlite; in-memory databases use StaticPool so every session sees
the same database.
"""

from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool, StaticPool

from core.config import Settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Build the async engine for the given URL."""
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url.rstrip("/").endswith("sqlite+aiosqlite:"):
            kwargs["poolclass"] = StaticPool
        engine = create_async_engine(database_url, echo=echo, **kwargs)
        # SQLite ignores ON DELETE CASCADE unless this pragma is set per connection
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    # NullPool: no connection reuse — each session gets a fresh connection.
    return create_async_engine(database_url, echo=echo, poolclass=NullPool)


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    return create_engine(settings.database_url, echo=settings.database_echo)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Async session factory bound to `engine`."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> bool:
    """Creates all tables defined in database_models."""
    async with engine.begin() as conn:
        from models.database_models import Agent, EmbeddingChunk, RagConfiguration, TrainingDocument  # noqa
        await conn.run_sync(Base.metadata.create_all)
        return True


async def drop_db(engine: AsyncEngine) -> None:
    """Drops every table. Used by tests and the `reset-db` command."""
    async with engine.begin() as conn:
        from models.database_models import Agent, EmbeddingChunk, RagConfiguration, TrainingDocument  # noqa
        await conn.run_sync(Base.metadata.drop_all)


async def dispose_engine(engine: Optional[AsyncEngine]) -> None:
    if engine is not None:
        await engine.dispose()
