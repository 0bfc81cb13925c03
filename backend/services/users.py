"""User lookups and state updates."""

from __future__ import annotations

from datetime import datetime
from typing import Any, cast

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from core.clock import utc_now
from models import User, UserStatus


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def normalize_email(value: str) -> str:
    return value.strip().lower()


async def find_by_email(session: AsyncSession, email: str) -> User | None:
    lowered_email_column = cast(Any, func.lower(cast(Any, User.email)))
    result = await session.execute(
        select(User).where(_eq(lowered_email_column, normalize_email(email))).limit(1)
    )
    return result.scalar_one_or_none()


async def find_by_oauth_identity(
    session: AsyncSession,
    *,
    provider: str,
    external_id: str,
) -> User | None:
    result = await session.execute(
        select(User)
        .where(
            _eq(User.oauth_provider, provider),
            _eq(User.oauth_id, external_id),
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


def update_status(user: User, status: UserStatus) -> None:
    user.status = status.value


def update_last_login(user: User, *, at: datetime | None = None) -> None:
    user.last_login_at = at or utc_now()
