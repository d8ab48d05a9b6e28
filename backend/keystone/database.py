"""
Async engine and session factories.

The engine URL comes from KEYSTONE_DATABASE_URL: asyncpg against PostgreSQL in
deployment, aiosqlite for tests and local experiments.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from keystone.config import get_settings

settings = get_settings()

# Connection pool sizing; SQLite engines ignore it
SERVER_POOL_OPTIONS = {
    "pool_size": 10,
    "max_overflow": 20,
    "pool_timeout": 30,
    "pool_recycle": 1800,
    "pool_pre_ping": True,
}


def build_engine(database_url: str) -> AsyncEngine:
    options = {} if database_url.startswith("sqlite") else SERVER_POOL_OPTIONS
    return create_async_engine(database_url, echo=settings.debug, **options)


engine = build_engine(settings.database_url)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db() -> None:
    """Create any missing tables for the models in keystone.models."""
    import keystone.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    One unit of work outside a request (worker jobs, scripts).

    Commits when the block exits cleanly and rolls back otherwise.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: the request's unit of work."""
    async with get_session_context() as session:
        yield session
