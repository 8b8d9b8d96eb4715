"""
Database Connection Management
Async SQLAlchemy with connection pooling
Source: https://docs.sqlalchemy.org/en/20/orm/extensions/asyncio.html
"""

from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from src.api.config import settings
from src.utils.logging import get_logger

logger = get_logger(__name__)


# Global engine instance, created once and reused
_engine: AsyncEngine | None = None
_async_session_maker: async_sessionmaker[AsyncSession] | None = None


def build_engine(url: str, *, pooled: bool = True, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for ``url``.

    SQLite (aiosqlite) and test engines run without a pool; PostgreSQL
    (asyncpg) uses the configured QueuePool.
    Source: https://docs.sqlalchemy.org/en/20/core/pooling.html
    """
    if not pooled or url.startswith("sqlite"):
        return create_async_engine(url, echo=echo, poolclass=NullPool)

    return create_async_engine(
        url,
        echo=echo,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_pre_ping=True,  # Verify connections before using
    )


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory with the settings every unit of work relies on."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Snapshots are built from objects after commit
        autoflush=False,  # Manual flush control
    )


def get_engine() -> AsyncEngine:
    """
    Get or create the global async engine.

    Returns:
        AsyncEngine instance
    """
    global _engine

    if _engine is None:
        logger.info(f"Creating database engine: {settings.database_url.split('@')[-1]}")
        _engine = build_engine(
            settings.database_url,
            pooled=not settings.is_testing,
            echo=settings.DEBUG,
        )
        logger.info("Database engine created successfully")

    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """
    Get or create the global session maker.

    Returns:
        Async session maker
    """
    global _async_session_maker

    if _async_session_maker is None:
        _async_session_maker = build_session_maker(get_engine())
        logger.info("Session maker created successfully")

    return _async_session_maker


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting database sessions.

    Services commit their own unit of work; anything left open when the
    request fails is rolled back here.

    Example:
        >>> @router.get("/claims/{claim_id}")
        >>> async def get_claim(session: AsyncSession = Depends(get_session)):
        >>>     ...

    Source: https://fastapi.tiangolo.com/tutorial/sql-databases/#create-a-dependency
    """
    session_maker = get_session_maker()

    async with session_maker() as session:
        try:
            yield session
        except Exception as e:
            await session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            await session.close()


async def init_models(engine: AsyncEngine | None = None) -> None:
    """
    Create all tables from model metadata.

    For local SQLite runs and tests; deployed databases use Alembic.
    """
    from src.models import Base

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def close_db_connection() -> None:
    """Close database connection pool."""
    global _engine, _async_session_maker

    if _engine is not None:
        logger.info("Closing database connection pool...")
        await _engine.dispose()
        _engine = None
        _async_session_maker = None
        logger.info("Database connection pool closed")


async def check_db_connection() -> bool:
    """
    Check if database connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
