"""
Database engine, session factory, and declarative base.

Uses async SQLAlchemy 2.0 (asyncpg on PostgreSQL, aiosqlite on SQLite).
"""

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from fwaguard.config import settings

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Metadata root for the incident tables."""

    pass


# Process-wide engine, built on first use
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def create_engine_for(url: str, echo: bool = False) -> AsyncEngine:
    """Pool sizing applies to server databases only."""
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo)
    return create_async_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=settings.db_pool_recycle,
        echo=echo,
    )


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


def get_engine() -> AsyncEngine:
    """Engine for ``settings.async_database_url``, created once."""
    global _engine
    if _engine is None:
        _engine = create_engine_for(settings.async_database_url, echo=settings.debug)
        logger.info("database_engine_created")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory bound to ``get_engine()``."""
    global _session_factory
    if _session_factory is None:
        _session_factory = make_session_factory(get_engine())
    return _session_factory


async def create_tables(engine: AsyncEngine) -> None:
    # Import models so Base.metadata is populated
    import fwaguard.db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> None:
    """
    Start the engine at application startup.

    Development builds the schema straight from the models; every other
    environment runs the Alembic revision instead, which also installs the
    append-only triggers.
    """
    engine = get_engine()

    if settings.environment.lower() == "development":
        await create_tables(engine)
        logger.info("tables_created", mode="development")
    else:
        logger.info("skipping_auto_create", reason="production uses alembic")

    logger.info("database_initialized")


async def close_db() -> None:
    """Dispose the pool; the next ``get_engine()`` builds a fresh one."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("database_closed")
