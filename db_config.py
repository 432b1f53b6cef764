"""
Database configuration module using centralized settings.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from core.config import settings
from core.logging import get_logger

logger = get_logger("database")

ASYNC_SQLALCHEMY_DATABASE_URL = settings.async_database_url
IS_SQLITE = ASYNC_SQLALCHEMY_DATABASE_URL.startswith("sqlite")

logger.info("Database configuration loaded", driver=ASYNC_SQLALCHEMY_DATABASE_URL.split("://", 1)[0])

if IS_SQLITE:
    # aiosqlite connections are bound to the loop that opened them
    async_engine = create_async_engine(
        ASYNC_SQLALCHEMY_DATABASE_URL,
        poolclass=NullPool,
        echo=settings.enable_sql_logging
    )

    @event.listens_for(async_engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
else:
    async_engine = create_async_engine(
        ASYNC_SQLALCHEMY_DATABASE_URL,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=settings.enable_sql_logging
    )

AsyncSessionLocal = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False
)

Base = declarative_base()


async def get_async_db():
    """Yield an async session; roll back if the request fails."""
    async with AsyncSessionLocal() as db:
        try:
            logger.debug("Async database session created")
            yield db
        except Exception as e:
            logger.error("Async database session error", error=str(e))
            await db.rollback()
            raise
        finally:
            logger.debug("Async database session closed")


async def init_models():
    """Create every table that does not exist yet."""
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
