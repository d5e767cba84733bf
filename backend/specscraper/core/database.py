"""
Database infrastructure.

This module provides the async SQLAlchemy engine, session factory,
and declarative base for the HTML cache and phone data stores.
SQLite (aiosqlite) is the default backend; any async SQLAlchemy URL works.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import Pool

from specscraper.core.config import settings

# Configure logger
logger = logging.getLogger(__name__)

# Convert DATABASE_URL to an async driver if needed
database_url = settings.DATABASE_URL
if database_url.startswith("postgresql://"):
    database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
elif database_url.startswith("sqlite://"):
    database_url = database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)


def _engine_options(url: str) -> dict[str, Any]:
    """Pool options for the given URL. SQLite manages its own pool."""
    options: dict[str, Any] = {"echo": settings.DB_ECHO}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=10,  # One connection per concurrent scrape is plenty
            max_overflow=5,
            pool_recycle=3600,  # Recycle connections after 1 hour
            pool_reset_on_return="rollback",
        )
    return options


def create_engine_for(url: str, **overrides: Any) -> AsyncEngine:
    """Create an async engine with the pool options used by the application.

    Keyword overrides are passed to create_async_engine (e.g. poolclass=StaticPool
    for a shared in-memory SQLite database).
    """
    return create_async_engine(url, **{**_engine_options(url), **overrides})


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory with explicit transaction control."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,  # Don't expire objects after commit (avoid extra queries)
        autoflush=False,
    )


engine: AsyncEngine = create_engine_for(database_url)

AsyncSessionLocal: async_sessionmaker[AsyncSession] = create_session_factory(engine)


class Base(DeclarativeBase):
    """
    Base class for all database models.

    Provides common columns that all models inherit:
    - id: Integer primary key with automatic indexing
    - created_at: Timezone-aware timestamp of record creation (UTC)
    - updated_at: Timezone-aware timestamp of last update (UTC)
    """

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


@event.listens_for(Pool, "connect")
def receive_connect(dbapi_conn: Any, connection_record: Any) -> None:
    """Log new database connections (useful for spotting connection churn)."""
    logger.debug("Database connection established")


async def init_db(bind: AsyncEngine | None = None) -> None:
    """
    Create all tables and verify the database is reachable.

    Should be called once at startup so the cache and data stores can
    assume their tables exist.

    Args:
        bind: Engine to initialize. Defaults to the application engine.

    Raises:
        Exception: If the database cannot be reached or tables cannot be created
    """
    # Register models on Base.metadata before create_all
    import specscraper.models  # noqa: F401

    target = bind or engine
    db_info = str(target.url).split("@")[-1]
    try:
        async with target.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            result = await conn.execute(text("SELECT 1"))
            assert result.scalar() == 1
        logger.info(
            "Database initialized successfully",
            extra={"database_url": db_info},  # Log without credentials
        )
    except Exception as e:
        logger.error(
            "Failed to initialize database",
            extra={"error": str(e), "database_url": db_info},
            exc_info=True,
        )
        raise


async def close_db() -> None:
    """Dispose of the connection pool on shutdown."""
    await engine.dispose()
    logger.info("Database connections closed and pool disposed")
