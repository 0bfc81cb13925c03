"""Deletion of expired sessions and spent verification records."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, cast

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from db.session import unit_of_work
from models import EmailVerification, UserSession
from services.rate_limiter import DEFAULT_RESEND_WINDOW_SECONDS

PRUNE_BATCH_SIZE = 500
DEFAULT_VERIFICATION_RETENTION = timedelta(days=1)


def _lte(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column <= value)


def _lt(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column < value)


async def prune_expired_sessions(
    session: AsyncSession,
    *,
    now: datetime,
    batch_size: int = PRUNE_BATCH_SIZE,
) -> int:
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    id_column = cast(ColumnElement[str], UserSession.id)
    expired_ids = (
        select(id_column)
        .where(_lte(UserSession.expires_at, now))
        .limit(batch_size)
    )
    async with unit_of_work(session):
        result = await session.execute(
            delete(UserSession).where(cast(Any, id_column).in_(expired_ids))
        )
    return int(cast(Any, result).rowcount or 0)


async def prune_stale_verifications(
    session: AsyncSession,
    *,
    now: datetime,
    retention: timedelta = DEFAULT_VERIFICATION_RETENTION,
    resend_window: timedelta = timedelta(seconds=DEFAULT_RESEND_WINDOW_SECONDS),
    batch_size: int = PRUNE_BATCH_SIZE,
) -> int:
    """Delete verification records that can no longer be used or counted.

    A record qualifies once it was created before ``now - retention`` and is
    verified, superseded or expired. Records inside ``resend_window`` still
    count toward the resend limit and are kept whatever the retention.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    if retention < timedelta(0):
        raise ValueError("retention must be non-negative")

    id_column = cast(ColumnElement[str], EmailVerification.id)
    superseded_column = cast(Any, EmailVerification.superseded_at)
    stale_ids = (
        select(id_column)
        .where(
            _lte(EmailVerification.created_at, now - retention),
            _lt(EmailVerification.created_at, now - resend_window),
            or_(
                cast(ColumnElement[bool], EmailVerification.verified == True),  # noqa: E712
                cast(ColumnElement[bool], superseded_column.is_not(None)),
                _lte(EmailVerification.expires_at, now),
            ),
        )
        .limit(batch_size)
    )
    async with unit_of_work(session):
        result = await session.execute(
            delete(EmailVerification).where(cast(Any, id_column).in_(stale_ids))
        )
    return int(cast(Any, result).rowcount or 0)
