"""Database engine and session factory.

SQLite (aiosqlite) is used when no DATABASE_URL is configured; production
deployments point it at PostgreSQL (asyncpg).
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .logging_config import get_logger
from .models import Base

logger = get_logger(__name__)


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine.

    SQLite connections get foreign keys switched on and a busy timeout so
    concurrent workers wait on the write lock instead of failing.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["timeout"] = 30

    engine = create_async_engine(database_url, echo=echo, connect_args=connect_args)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine.sync_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory; objects stay usable after commit."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables that don't exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_initialized", dialect=engine.dialect.name)
