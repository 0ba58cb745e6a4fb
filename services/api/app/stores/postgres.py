"""Engine and sessions for the engagement database.

One async engine per process, opened in the app lifespan. Every
PostgresMetricsStore call (`app.stores.repository`) runs inside one
`get_session()` block, which is one transaction: commit when the block
exits cleanly, rollback when it raises. The row locks the repository
takes with FOR UPDATE are therefore held until that commit.

Tables (users, follows, projects, project_upvotes, comments,
comment_likes, notifications) are declared in `app.models` against
`Base`; migrations live in alembic/, and `create_tables()` is a
development shortcut only.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.settings import get_settings


class Base(DeclarativeBase):
    """Declarative base shared by the engagement models."""

    pass


# Set by init_db() in the lifespan, cleared by close_db()
_engine = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


async def init_db() -> None:
    """Open the engine pool for the configured DATABASE_URL."""
    global _engine, _session_factory

    settings = get_settings()
    _engine = create_async_engine(
        settings.async_database_url,
        echo=settings.debug,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
    )
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def ping_db() -> None:
    """Run SELECT 1 so a bad DATABASE_URL fails at startup."""
    async with get_session() as session:
        await session.execute(text("SELECT 1"))


async def close_db() -> None:
    """Dispose of the engine pool on shutdown."""
    global _engine, _session_factory
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """One transaction: commit on clean exit, rollback and re-raise otherwise.

    Usage:
        async with get_session() as session:
            project = await session.get(Project, project_id)
    """
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    async with _session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_tables() -> None:
    """Create every model table without alembic (local seeding only)."""
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
