"""Async engine, session factory and unit-of-work helper."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core import settings

_connect_args = (
    {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
)
async_engine = create_async_engine(settings.database_url, connect_args=_connect_args)
async_session_maker = async_sessionmaker(async_engine, expire_on_commit=False)


async def get_session() -> AsyncIterator[AsyncSession]:
    """Provide one session per request."""
    async with async_session_maker() as session:
        yield session


@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Run a block of writes atomically on ``session``.

    Commits when the block exits normally. Any exception, cancellation
    included, rolls back everything issued since the last commit and is
    re-raised.
    """
    try:
        yield session
        await session.commit()
    except BaseException:
        await session.rollback()
        raise
