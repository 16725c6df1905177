"""
POS Node — Local store engine, sessions and the write serializer

The device owns a single SQLite file. All write units of work go through
`serialized_write`, which holds one in-process lock for the lifetime of the
transaction, so the primary mutation and its sync queue entries commit together
and concurrent writers never race on the same rows. Sessions keep their
objects across commits, so a writer re-reads the rows it mutates inside the
block (`populate_existing=True`) instead of trusting its identity map.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from posnode.core.config import get_settings

settings = get_settings()


class Base(DeclarativeBase):
    pass


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async SQLite engine with WAL journaling and foreign keys enabled."""
    eng = create_async_engine(url, echo=echo, connect_args={"timeout": 30})

    @event.listens_for(eng.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return eng


def build_session_factory(eng: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(eng, expire_on_commit=False)


engine = build_engine(settings.database_url, echo=settings.DEBUG)
AsyncSessionLocal = build_session_factory(engine)


async def create_schema(eng: AsyncEngine) -> None:
    # Importing the models registers their tables on Base.metadata
    from posnode.models import catalog, order, sync  # noqa: F401

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


_write_lock: asyncio.Lock | None = None
_write_lock_loop: asyncio.AbstractEventLoop | None = None


def get_write_lock() -> asyncio.Lock:
    """Process-wide writer lock, bound to the running event loop."""
    global _write_lock, _write_lock_loop
    loop = asyncio.get_running_loop()
    if _write_lock is None or _write_lock_loop is not loop:
        _write_lock = asyncio.Lock()
        _write_lock_loop = loop
    return _write_lock


@asynccontextmanager
async def serialized_write(db: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    Run one write unit of work on `db`.

    Commits on normal exit, rolls back and re-raises on any exception.
    Never await network I/O inside this block.
    """
    async with get_write_lock():
        try:
            yield db
            await db.commit()
        except BaseException:
            await db.rollback()
            raise
