"""
Database connection and session management.
Optional SQLAlchemy async engine, created only when DATABASE_URL is set.
"""
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from typing import Optional
import logging

from tcm_portal.config import settings

logger = logging.getLogger(__name__)

# Base class for ORM models
Base = declarative_base()

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def create_engine_for(url: str) -> AsyncEngine:
    """
    Build an async engine for *url*.

    In-memory SQLite keeps a single connection so every session sees the
    same database.
    """
    if url.startswith("sqlite") and ":memory:" in url:
        from sqlalchemy.pool import StaticPool

        return create_async_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(
        url,
        echo=False,  # Set to True for SQL query logging
        pool_pre_ping=True,
        poolclass=NullPool,
    )


def get_engine() -> Optional[AsyncEngine]:
    """Return the process-wide engine, or None when no DATABASE_URL is set."""
    global _engine
    if _engine is None and settings.DATABASE_URL:
        _engine = create_engine_for(settings.DATABASE_URL)
    return _engine


def get_session_factory() -> Optional[async_sessionmaker]:
    global _session_factory
    engine = get_engine()
    if engine is None:
        return None
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """
    Initialize database tables.
    Creates all tables defined in Base metadata.
    """
    engine = engine or get_engine()
    if engine is None:
        logger.info("DATABASE_URL not set; skipping database initialisation")
        return
    try:
        async with engine.begin() as conn:
            # Import all models to ensure they're registered
            from tcm_portal.models import database_models  # noqa: F401

            await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created/verified")
    except Exception as e:
        logger.error(f"Error initializing database: {e}")
        raise


async def close_db() -> None:
    """Close database connections gracefully."""
    global _engine, _session_factory
    if _engine is None:
        return
    try:
        await _engine.dispose()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error closing database: {e}")
        raise
    finally:
        _engine = None
        _session_factory = None
