"""
Database connection and session management.

This module provides the SQLAlchemy async engine, connection pooling and the
session factory shared by the API routes and the background notification
dispatcher. Dispatch runs after the request has returned, so it never borrows
the request's session; it opens its own through ``async_session_maker``.
"""

import asyncio
import logging
import sys
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from src.config import settings

logger = logging.getLogger(__name__)

# SQLAlchemy declarative base for ORM models
Base = declarative_base()


def use_selector_event_loop_on_windows() -> bool:
    """
    Switch Windows to the selector event loop policy, which psycopg3 requires.

    Must run before the event loop is created (uvicorn startup, ``asyncio.run``).

    Returns:
        True if the policy was changed
    """
    if sys.platform != "win32":
        return False

    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    return True


def create_engine() -> AsyncEngine:
    """
    Create and configure async SQLAlchemy engine with connection pooling.

    Returns:
        AsyncEngine: Configured async database engine
    """
    engine = create_async_engine(
        str(settings.database_url),
        echo=settings.db_echo,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=settings.db_pool_pre_ping,
        pool_recycle=settings.db_pool_recycle,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def receive_connect(dbapi_conn: Any, connection_record: Any) -> None:
        """Log successful database connections."""
        logger.debug("Database connection established")

    return engine


# Defer creation in test environments where the driver may not be installed
try:
    engine: AsyncEngine = create_engine()
except Exception as e:
    logger.warning(f"Failed to create database engine at module load time: {e}")
    engine = None  # type: ignore

async_session_maker = (
    async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    if engine
    else None
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for database sessions.

    Yields:
        AsyncSession: Database session, rolled back if the request fails
    """
    if async_session_maker is None:
        raise RuntimeError(
            "Database not initialized. Please ensure DATABASE_URL is configured correctly."
        )

    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """
    Initialize database schema.

    Creates all tables defined in SQLAlchemy models. Production schemas are
    managed outside the application.
    """
    # Register ORM models with Base before create_all
    import src.orm.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema initialized")


async def drop_db() -> None:
    """
    Drop all database tables.

    WARNING: This destroys all data. Only use for testing or development.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info("Database schema dropped")
