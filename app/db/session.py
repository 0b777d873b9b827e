"""
Database Session Management
===========================

Engine and session factories for the ``postgres`` user store.

Nothing here is global: the store that needs a database builds its own
engine at startup and disposes it on shutdown.
"""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

logger = logging.getLogger(__name__)


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async database engine.

    Postgres gets a pooled configuration:
    - pool_size: 5 connections (one webhook request uses one at a time)
    - max_overflow: 10 additional connections
    - pool_recycle: Recycle connections every 5 minutes to match typical
      PgBouncer idle timeouts
    - pool_use_lifo: Prefer the most-recently-returned connection

    Other dialects (SQLite in tests) use SQLAlchemy's defaults.
    """
    if not database_url:
        raise ValueError(
            "Database URL not configured. "
            "Please set DATABASE_URL environment variable."
        )

    if database_url.startswith("postgresql"):
        return create_async_engine(
            database_url,
            echo=echo,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=False,
            pool_recycle=300,
            pool_use_lifo=True,
            pool_timeout=30,
        )

    return create_async_engine(database_url, echo=echo)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the async session factory bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def check_connection(engine: AsyncEngine) -> None:
    """
    Open one connection and run a trivial query.

    Called on startup so a broken DATABASE_URL shows up in the logs
    before the first webhook arrives.
    """
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("Database connection established")
