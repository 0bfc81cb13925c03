"""Tests for refresh-token session storage and the per-user cap."""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import User, UserSession
from services.auth.sessions import (
    MAX_ACTIVE_SESSIONS,
    create_session,
    enforce_session_limit,
    hash_refresh_token,
)
from services.auth.tokens import TokenService


async def _session_hashes(session: AsyncSession, user_id: str) -> list[str]:
    result = await session.execute(
        select(UserSession.refresh_token_hash).where(UserSession.user_id == user_id)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_new_session_survives_cap_when_timestamps_tie(
    db_session: AsyncSession, test_settings, clock
) -> None:
    user = User(email="busy@example.com")
    db_session.add(user)
    await db_session.flush()
    tokens = TokenService.from_settings(test_settings, clock=clock)

    # Every session shares one created_at; only the id can break the tie.
    for index in range(MAX_ACTIVE_SESSIONS + 3):
        refresh_token = f"refresh-{index}"
        await create_session(db_session, user.id, refresh_token, tokens, clock=clock)

        hashes = await _session_hashes(db_session, user.id)
        assert hash_refresh_token(refresh_token) in hashes
        assert len(hashes) == min(index + 1, MAX_ACTIVE_SESSIONS)


@pytest.mark.asyncio
async def test_session_limit_evicts_oldest_first(
    db_session: AsyncSession, test_settings, clock
) -> None:
    user = User(email="busy@example.com")
    db_session.add(user)
    await db_session.flush()
    tokens = TokenService.from_settings(test_settings, clock=clock)
    start = clock.now
    for index in range(3):
        clock.now = start + timedelta(minutes=index)
        await create_session(db_session, user.id, f"refresh-{index}", tokens, clock=clock)

    await enforce_session_limit(db_session, user.id, max_active_sessions=2)

    hashes = await _session_hashes(db_session, user.id)
    assert sorted(hashes) == sorted(hash_refresh_token(f"refresh-{index}") for index in (1, 2))
