"""Refresh-token session persistence and rotation."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Any, cast

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from core.clock import Clock, ensure_aware, utc_now
from core.errors import AuthError, ErrorKind
from db.session import unit_of_work
from models import User, UserSession

from .tokens import TokenClaims, TokenService

MAX_ACTIVE_SESSIONS = 5


@dataclass(frozen=True)
class IssuedTokens:
    access_token: str
    refresh_token: str
    user_id: str


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def hash_refresh_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


async def enforce_session_limit(
    session: AsyncSession,
    user_id: str,
    *,
    max_active_sessions: int = MAX_ACTIVE_SESSIONS,
    keep_id: str | None = None,
) -> None:
    """Delete the user's oldest sessions beyond ``max_active_sessions``.

    ``keep_id`` is never evicted.
    """
    created_at_column = cast(Any, UserSession.created_at)
    id_column = cast(Any, UserSession.id)
    result = await session.execute(
        select(UserSession)
        .where(_eq(UserSession.user_id, user_id))
        .order_by(created_at_column.desc(), id_column.desc())
    )
    sessions = sorted(result.scalars().all(), key=lambda item: item.id != keep_id)
    surplus = sessions[max_active_sessions:]
    for session_obj in surplus:
        await session.delete(session_obj)
    if surplus:
        await session.flush()


async def create_session(
    session: AsyncSession,
    user_id: str,
    refresh_token: str,
    tokens: TokenService,
    *,
    max_active_sessions: int = MAX_ACTIVE_SESSIONS,
    clock: Clock = utc_now,
) -> UserSession:
    """Store the hash of ``refresh_token``; the caller commits."""
    now = clock()
    session_obj = UserSession(
        user_id=user_id,
        refresh_token_hash=hash_refresh_token(refresh_token),
        expires_at=now + tokens.refresh.lifetime,
        created_at=now,
        last_used_at=now,
    )
    session.add(session_obj)
    await session.flush()
    await enforce_session_limit(
        session,
        user_id,
        max_active_sessions=max_active_sessions,
        keep_id=session_obj.id,
    )
    return session_obj


async def get_session_for_token(
    session: AsyncSession,
    refresh_token: str,
    *,
    lock_for_update: bool = False,
    clock: Clock = utc_now,
) -> UserSession:
    stmt = select(UserSession).where(
        _eq(UserSession.refresh_token_hash, hash_refresh_token(refresh_token))
    )
    if lock_for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    session_obj = result.scalar_one_or_none()
    if session_obj is None:
        raise AuthError(ErrorKind.INVALID_TOKEN, "Invalid refresh token")
    if ensure_aware(session_obj.expires_at) <= clock():
        raise AuthError(ErrorKind.TOKEN_EXPIRED, "Refresh token has expired")
    return session_obj


async def start_session(
    session: AsyncSession,
    user: User,
    tokens: TokenService,
    *,
    max_active_sessions: int = MAX_ACTIVE_SESSIONS,
    clock: Clock = utc_now,
) -> IssuedTokens:
    """Mint an access/refresh pair for ``user`` and record the refresh token."""
    user_id = user.id
    access_token, refresh_token = tokens.issue_pair(TokenClaims(sub=user_id, email=user.email))
    async with unit_of_work(session):
        await create_session(
            session,
            user_id,
            refresh_token,
            tokens,
            max_active_sessions=max_active_sessions,
            clock=clock,
        )
    return IssuedTokens(access_token=access_token, refresh_token=refresh_token, user_id=user_id)


async def rotate_session(
    session: AsyncSession,
    refresh_token: str,
    tokens: TokenService,
    *,
    clock: Clock = utc_now,
) -> IssuedTokens:
    """Exchange a refresh token for a new pair, replacing the stored hash."""
    claims = tokens.verify_refresh_token(refresh_token)
    session_obj = await get_session_for_token(
        session,
        refresh_token,
        lock_for_update=True,
        clock=clock,
    )
    if session_obj.user_id != claims.sub:
        raise AuthError(ErrorKind.INVALID_TOKEN, "Invalid refresh token")

    access_token, new_refresh_token = tokens.issue_pair(claims)
    now = clock()
    async with unit_of_work(session):
        session_obj.refresh_token_hash = hash_refresh_token(new_refresh_token)
        session_obj.last_used_at = now
        session_obj.expires_at = now + tokens.refresh.lifetime
    return IssuedTokens(
        access_token=access_token,
        refresh_token=new_refresh_token,
        user_id=claims.sub,
    )


async def revoke_session(session: AsyncSession, refresh_token: str) -> None:
    result = await session.execute(
        select(UserSession).where(
            _eq(UserSession.refresh_token_hash, hash_refresh_token(refresh_token))
        )
    )
    session_obj = result.scalar_one_or_none()
    if session_obj is not None:
        await session.delete(session_obj)
    await session.commit()
