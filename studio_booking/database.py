"""Database engine and session management"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from studio_booking.config import settings

Base = declarative_base()


def configure_sqlite(engine: AsyncEngine) -> None:
    """Make SQLite take the write lock when a transaction begins.

    Without this pysqlite defers locking until the first write, and two
    transactions that both read before writing fail with "database is
    locked" instead of waiting for each other.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine(url: str, **kwargs) -> AsyncEngine:
    """Create an async engine with the dialect tweaks the booking engine needs"""
    engine = create_async_engine(url, **kwargs)
    configure_sqlite(engine)
    return engine


engine = create_engine(settings.database_url, pool_pre_ping=True)

SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    """FastAPI dependency yielding a database session"""
    async with SessionLocal() as session:
        yield session
