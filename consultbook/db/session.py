# consultbook/db/session.py

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncEngine, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from consultbook.core.config import settings
from consultbook.core.errors import ConfigurationError

# Bulk blocking needs INSERT .. ON CONFLICT .. RETURNING
SUPPORTED_BACKENDS = ("postgresql", "sqlite")


def _begin_immediate(engine: AsyncEngine) -> None:
    """
    SQLite only: open every transaction with BEGIN IMMEDIATE so it holds the
    write lock from its first read. The check-then-insert sequences (slot vs
    block, one upcoming booking per email) then run one at a time, the way
    advisory locks make them run on PostgreSQL.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _no_driver_begin(dbapi_connection, connection_record):
        # stop the driver from issuing its own deferred BEGIN
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def make_engine(url: str, **overrides) -> AsyncEngine:
    backend = make_url(url).get_backend_name()
    if backend not in SUPPORTED_BACKENDS:
        raise ConfigurationError(f"Unsupported database backend {backend!r}, use PostgreSQL or SQLite")

    kwargs = {"pool_pre_ping": True}  # avoids stale connection errors
    if backend == "sqlite":
        # wait on the write lock instead of failing fast
        kwargs["connect_args"] = {"timeout": 15}
    kwargs.update(overrides)
    engine = create_async_engine(url, **kwargs)
    if backend == "sqlite":
        _begin_immediate(engine)
    return engine


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        expire_on_commit=False,  # keep objects usable after commit
        class_=AsyncSession,
    )


# 1) Engine: one per process
engine = make_engine(settings.async_db_uri)

# 2) Declarative Base: all models inherit from this
class Base(DeclarativeBase):
    pass
