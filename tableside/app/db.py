"""Engine and session factory helpers for the order store.

Use :func:`get_engine` to build an :class:`~sqlalchemy.ext.asyncio.AsyncEngine`
from a DSN and :func:`make_sessionmaker` for the session factory the
services open one unit of work with. :func:`create_test_session` returns an
in-memory SQLite pair with the schema already created.
"""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from .models import Base
from .obs import add_query_logger


def get_engine(dsn: str) -> AsyncEngine:
    """Create an :class:`AsyncEngine` for ``dsn`` with query timing attached.

    In-memory SQLite databases use a static pool so that every session sees
    the same data.
    """
    url = make_url(dsn)
    kwargs: dict = {}
    if url.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
    engine = create_async_engine(dsn, **kwargs)
    if url.get_backend_name() == "sqlite":
        _sqlite_explicit_transactions(engine)
    add_query_logger(engine, url.get_backend_name())
    return engine


def _sqlite_explicit_transactions(engine: AsyncEngine) -> None:
    # pysqlite's implicit BEGIN does not cover SAVEPOINT; begin explicitly
    # and take the write lock at the start of every transaction.
    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):  # type: ignore[no-untyped-def]
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


def shares_one_connection(engine: AsyncEngine) -> bool:
    """Return ``True`` when every session of ``engine`` uses the same DBAPI connection.

    Transactions on such an engine must not overlap.
    """
    return isinstance(engine.sync_engine.pool, StaticPool)


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables known to :data:`~tableside.app.models.Base`."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def create_test_session() -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """Return a session factory and engine backed by in-memory SQLite."""

    engine = get_engine("sqlite+aiosqlite://")
    await init_models(engine)
    return make_sessionmaker(engine), engine


__all__ = [
    "get_engine",
    "make_sessionmaker",
    "shares_one_connection",
    "init_models",
    "create_test_session",
]
