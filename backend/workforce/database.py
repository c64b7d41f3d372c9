from __future__ import annotations

from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from workforce.config import settings
from workforce.models import Base


def use_explicit_sqlite_transactions(engine: AsyncEngine) -> None:
    """Let SQLAlchemy emit BEGIN itself on SQLite.

    The sqlite3 driver defers BEGIN until the first write, so a SAVEPOINT
    issued before any write would open (and its RELEASE would commit) the
    outer transaction.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _no_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


def use_sqlite_wal(engine: AsyncEngine, busy_timeout_ms: int) -> None:
    """Switch a file database to WAL and wait for locks instead of failing.

    In WAL mode readers no longer block the writer, so a long agent run does
    not lock out the API. The database gets -wal and -shm side files and must
    live on a local filesystem. In-memory databases stay in "memory" mode.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
        cursor.close()


engine = create_async_engine(settings.DATABASE_URL, echo=False, pool_pre_ping=True)
if engine.dialect.name == "sqlite":
    use_explicit_sqlite_transactions(engine)
    if settings.SQLITE_WAL:
        use_sqlite_wal(engine, settings.SQLITE_BUSY_TIMEOUT_MS)

async_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request."""
    async with async_session() as session:
        yield session
