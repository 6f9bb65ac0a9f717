"""
SQLite Database Engine Configuration for the local durable store.

Optimized for:
- A single client process with background sync tasks
- Async operations via aiosqlite
- Safe concurrency with WAL and busy_timeout
- Durable commits with synchronous=NORMAL
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool


def _get_engine_options(database_url: str) -> dict:
    """
    Get engine options based on database type.
    SQLite requires special handling for async and concurrency.
    """
    options = {
        "echo": False,
        "future": True,
    }

    if database_url.startswith("sqlite"):
        # An in-memory database only lives as long as its single connection
        if ":memory:" in database_url:
            options["poolclass"] = StaticPool
            options["connect_args"] = {"check_same_thread": False}
        else:
            options["poolclass"] = NullPool

    return options


def _configure_sqlite_connection(dbapi_connection, connection_record):
    """
    Configure SQLite connection settings.
    Called on every new connection to the database.

    Settings:
    - WAL mode: readers never block the sync writer
    - busy_timeout: wait for locks instead of failing immediately
    - synchronous=NORMAL: durable across app crashes with WAL
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_store_engine(database_url: str) -> AsyncEngine:
    """Create an async engine for the given database URL."""
    engine = create_async_engine(database_url, **_get_engine_options(database_url))

    if database_url.startswith("sqlite"):
        # For aiosqlite, pragmas are applied through the sync_engine's pool events
        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            _configure_sqlite_connection(dbapi_connection, connection_record)

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to a store engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
