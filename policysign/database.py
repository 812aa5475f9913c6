from collections.abc import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from policysign.config import settings


def build_engine(database_url: str, **kwargs) -> AsyncEngine:
    """Create an async engine for ``database_url``.

    SQLite has no row locks, so every transaction is opened with
    ``BEGIN IMMEDIATE``: writers queue on the database lock instead of
    racing, which is what ``SELECT ... FOR UPDATE`` gives us on PostgreSQL.
    """
    engine_kwargs: dict = dict(echo=settings.debug)
    if "sqlite" not in database_url:
        engine_kwargs.update(pool_size=20, max_overflow=10, pool_pre_ping=True)
    engine_kwargs.update(kwargs)

    new_engine = create_async_engine(database_url, **engine_kwargs)

    if "sqlite" in database_url:

        @event.listens_for(new_engine.sync_engine, "connect")
        def _sqlite_connect(dbapi_conn, _connection_record):
            # Let the "begin" hook below emit BEGIN itself.
            dbapi_conn.isolation_level = None
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(new_engine.sync_engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return new_engine


engine = build_engine(settings.database_url)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
