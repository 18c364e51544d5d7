"""Database session management."""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Tuple

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine
)
from sqlalchemy.pool import StaticPool

from facescore.core.config import settings
from facescore.core.logging import get_logger
from facescore.infrastructure.database.models import Base

logger = get_logger(__name__)


def create_session_factory(database_url: str) -> Tuple[AsyncEngine, async_sessionmaker]:
    """Create an async engine and its session factory.

    In-memory SQLite URLs share a single connection so every session sees the
    same database.

    Args:
        database_url: SQLAlchemy async URL, e.g. ``postgresql+asyncpg://...``

    Returns:
        Tuple of the engine and the session factory
    """
    engine_kwargs = {"echo": settings.DEBUG}
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        engine_kwargs.update(poolclass=StaticPool, connect_args={"check_same_thread": False})

    engine = create_async_engine(database_url, **engine_kwargs)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )
    return engine, session_factory


async def init_models(engine: AsyncEngine) -> None:
    """Create missing tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready")


@asynccontextmanager
async def get_db_session(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """Get database session.

    Yields:
        AsyncSession: Database session

    Example:
        ```python
        async with get_db_session(session_factory) as session:
            await session.execute(query)
            await session.commit()
        ```
    """
    session = session_factory()
    logger.debug("Creating new database session")
    try:
        yield session
    except Exception as e:
        logger.error(
            "Database session error",
            error=str(e),
            exc_info=True
        )
        await session.rollback()
        raise
    finally:
        logger.debug("Closing database session")
        await session.close()
