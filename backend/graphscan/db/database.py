# backend/graphscan/db/database.py
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from typing import AsyncGenerator

from graphscan.core.config import settings


def build_engine(database_url: str, **kwargs) -> AsyncEngine:
    """Async engine; plain postgres URLs are routed through asyncpg"""
    url = database_url.replace("postgresql://", "postgresql+asyncpg://")
    if not url.startswith("sqlite"):
        kwargs.setdefault("pool_size", settings.DB_POOL_SIZE)
        kwargs.setdefault("max_overflow", settings.DB_MAX_OVERFLOW)
    return create_async_engine(url, echo=settings.DEBUG, **kwargs)


# Create async engine
engine = build_engine(settings.DATABASE_URL)

# Create async session factory
async_session_local = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Database session dependency"""
    async with async_session_local() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(target: AsyncEngine = engine):
    """Initialize database (create tables)"""
    from graphscan.db.base import Base

    async with target.begin() as conn:
        # Import all models to ensure they're registered
        from graphscan.db.models import scan_run, graph  # noqa: F401

        # Create tables
        await conn.run_sync(Base.metadata.create_all)


async def close_db(target: AsyncEngine = engine):
    """Close database connections"""
    await target.dispose()
