"""Database session dependencies."""
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.infra.db import base


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the application session factory."""
    if base.AsyncSessionLocal is None:
        raise RuntimeError("Database engine is not configured")
    return base.AsyncSessionLocal


async def get_db() -> AsyncIterator[AsyncSession]:
    """Yield a session for one request."""
    async with get_session_factory()() as session:
        yield session
