# app/db/session.py
# Async engine + session factory and the FastAPI dependency.
from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.core.config import get_settings
from app.db.engine import create_async_engine_safe

_settings = get_settings()

async_engine: AsyncEngine = create_async_engine_safe(
    _settings.DATABASE_URL,
    echo=_settings.SQL_ECHO,
)

AsyncSessionLocal: async_sessionmaker[AsyncSession] = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

async_session_maker = AsyncSessionLocal


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


async def close_engines() -> None:
    await async_engine.dispose()
