"""Sliding-window rate limiting over persisted action records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol, cast, runtime_checkable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from core.clock import Clock, ensure_aware, utc_now
from models import EmailVerification

DEFAULT_RESEND_LIMIT = 3
DEFAULT_RESEND_WINDOW_SECONDS = 300
# Smallest step used to keep retry_after strictly after "now".
RETRY_AFTER_EPSILON = timedelta(milliseconds=1)


@runtime_checkable
class SupportsWindowQueries(Protocol):
    async def count_since(self, subject_id: str, since: datetime) -> int: ...

    async def oldest_since(self, subject_id: str, since: datetime) -> datetime | None: ...


@dataclass(frozen=True)
class RateLimitResult:
    is_limited: bool
    request_count: int
    retry_after: datetime | None = None


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _gte(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column >= value)


class VerificationWindowStore:
    """Counts a user's verification records, one per code sent."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def count_since(self, subject_id: str, since: datetime) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(EmailVerification)
            .where(
                _eq(EmailVerification.user_id, subject_id),
                _gte(EmailVerification.created_at, since),
            )
        )
        return int(result.scalar_one())

    async def oldest_since(self, subject_id: str, since: datetime) -> datetime | None:
        created_at_column = cast(Any, EmailVerification.created_at)
        result = await self.session.execute(
            select(created_at_column)
            .where(
                _eq(EmailVerification.user_id, subject_id),
                _gte(created_at_column, since),
            )
            .order_by(created_at_column.asc())
            .limit(1)
        )
        oldest = result.scalar_one_or_none()
        return ensure_aware(oldest) if oldest is not None else None


class SlidingWindowRateLimiter:
    """Caps how often a subject may repeat an action in a trailing window.

    The check reads and decides without locking: concurrent calls for the
    same subject can both see ``limit - 1`` records and both pass, so the
    cap may be exceeded by the number of racing requests. Callers needing
    exact admission must serialize on their side.
    """

    def __init__(
        self,
        store: SupportsWindowQueries,
        limit: int = DEFAULT_RESEND_LIMIT,
        window_seconds: int = DEFAULT_RESEND_WINDOW_SECONDS,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self.store = store
        self.limit = max(limit, 0)
        self.window = timedelta(seconds=max(window_seconds, 0))
        self._clock = clock

    @property
    def disabled(self) -> bool:
        return self.limit == 0 or not self.window

    async def check_limit(self, subject_id: str) -> RateLimitResult:
        now = self._clock()
        window_start = now - self.window
        count = await self.store.count_since(subject_id, window_start)
        if self.disabled or count < self.limit:
            return RateLimitResult(is_limited=False, request_count=count)

        oldest = await self.store.oldest_since(subject_id, window_start)
        if oldest is None:
            # Records vanished between the two reads.
            return RateLimitResult(is_limited=True, request_count=count)

        retry_after = max(ensure_aware(oldest) + self.window, now + RETRY_AFTER_EPSILON)
        return RateLimitResult(is_limited=True, request_count=count, retry_after=retry_after)
