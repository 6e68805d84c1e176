"""
Database utilities and connection management
"""

from typing import AsyncIterator, Tuple
from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from models.database import Comment  # noqa: F401  registers the table on SQLModel.metadata


def normalize_database_url(url: str) -> str:
    """Select the async driver for plain postgres URLs"""
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


def create_engine_and_session_factory(
    database_url: str,
    echo: bool = False
) -> Tuple[AsyncEngine, async_sessionmaker]:
    """
    Build the process-wide engine and its session factory

    Args:
        database_url: SQLAlchemy URL, sync or async flavour
        echo: Log emitted SQL

    Returns:
        (engine, session factory)
    """
    engine = create_async_engine(normalize_database_url(database_url), echo=echo, future=True)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    return engine, session_factory


async def init_db(engine: AsyncEngine):
    """Initialize database tables"""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Dependency for FastAPI to get database session"""
    async with request.app.state.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
