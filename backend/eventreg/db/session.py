"""
Async engine and session factory.

Registration transactions rely on row locks taken with SELECT ... FOR UPDATE.
PostgreSQL honours them per row; SQLite ignores FOR UPDATE, so SQLite engines
open every transaction with BEGIN IMMEDIATE, which takes the database write
lock up front and gives the same read-decide-write exclusivity (coarser, but
SQLite only backs tests and local runs).
"""

from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from eventreg.core.config import get_settings


def configure_sqlite_locking(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        # Let SQLAlchemy emit BEGIN itself instead of the driver's lazy BEGIN
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str, **kwargs) -> AsyncEngine:
    settings = get_settings()
    if make_url(url).get_backend_name() == "sqlite":
        engine = create_async_engine(
            url,
            echo=settings.DEBUG,
            connect_args={"timeout": 30},
            **kwargs,
        )
        configure_sqlite_locking(engine)
        return engine

    return create_async_engine(
        url,
        echo=settings.DEBUG,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
        **kwargs,
    )


engine = build_engine(get_settings().DATABASE_URL)
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One session per request. Services commit; anything left open is rolled back."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            if session.in_transaction():
                await session.rollback()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Factory for work that outlives the request session (outbox delivery)."""
    return AsyncSessionLocal
