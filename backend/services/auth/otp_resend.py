"""Resending an email verification code."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, cast

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from core.clock import Clock, utc_now
from core.errors import DEFAULT_RETRY_AFTER_SECONDS, AuthError, ErrorKind
from db.session import unit_of_work
from models import EmailVerification, UserStatus
from services.mailer import VerificationMailer
from services.rate_limiter import SlidingWindowRateLimiter
from services.users import find_by_email

from .otp import OneTimeCodeService

logger = logging.getLogger(__name__)

DEFAULT_OTP_TTL = timedelta(minutes=15)
RESENT_MESSAGE = "Verification code resent"


@dataclass(frozen=True)
class ResendResult:
    message: str
    email: str
    user_id: str


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


async def supersede_pending_verifications(
    session: AsyncSession,
    user_id: str,
    *,
    now: datetime,
) -> None:
    """Mark every still-open verification record of ``user_id`` as replaced."""
    superseded_column = cast(Any, EmailVerification.superseded_at)
    await session.execute(
        update(EmailVerification)
        .where(
            _eq(EmailVerification.user_id, user_id),
            _eq(EmailVerification.verified, False),
            cast(ColumnElement[bool], superseded_column.is_(None)),
        )
        .values(superseded_at=now)
    )


def new_verification(
    user_id: str,
    code_hash: str,
    *,
    now: datetime,
    ttl: timedelta,
) -> EmailVerification:
    return EmailVerification(
        user_id=user_id,
        otp_hash=code_hash,
        expires_at=now + ttl,
        attempts=0,
        verified=False,
        created_at=now,
    )


async def deliver_code(
    mailer: VerificationMailer,
    *,
    user_id: str,
    email: str,
    code: str,
) -> None:
    """Send ``code`` without letting a delivery failure reach the caller.

    The verification record is already committed and stays valid.
    """
    try:
        await mailer.send_verification_email(email, code)
    except Exception as exc:
        logger.warning(
            "Verification email delivery failed",
            extra={"user_id": user_id},
            exc_info=exc,
        )


class OtpResendService:
    """Issues a fresh verification code to a user awaiting verification.

    Preconditions are checked in order (user exists, user pending, not rate
    limited) before anything is written. The old codes are superseded and the
    new one stored in a single transaction; delivery happens after commit.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        limiter: SlidingWindowRateLimiter,
        mailer: VerificationMailer,
        codes: OneTimeCodeService | None = None,
        ttl: timedelta = DEFAULT_OTP_TTL,
        clock: Clock = utc_now,
    ) -> None:
        self.session = session
        self.limiter = limiter
        self.mailer = mailer
        self.codes = codes or OneTimeCodeService()
        self.ttl = ttl
        self._clock = clock

    async def resend_verification_code(self, email: str) -> ResendResult:
        user = await find_by_email(self.session, email)
        if user is None:
            raise AuthError(ErrorKind.NOT_FOUND, "User not found")

        if user.status != UserStatus.PENDING_VERIFICATION.value:
            raise AuthError(ErrorKind.BAD_REQUEST, "User is already verified")

        limit = await self.limiter.check_limit(user.id)
        if limit.is_limited:
            retry_after = self._retry_after_seconds(limit.retry_after)
            logger.info(
                "Verification code resend throttled",
                extra={"user_id": user.id, "retry_after": retry_after},
            )
            raise AuthError(
                ErrorKind.TOO_MANY_REQUESTS,
                "Too many OTP requests. Please try again later.",
                retry_after=retry_after,
            )

        code = self.codes.generate_code()
        code_hash = self.codes.hash_code(code)
        user_id, user_email = user.id, user.email
        now = self._clock()
        async with unit_of_work(self.session):
            await supersede_pending_verifications(self.session, user_id, now=now)
            self.session.add(new_verification(user_id, code_hash, now=now, ttl=self.ttl))

        await deliver_code(self.mailer, user_id=user_id, email=user_email, code=code)
        logger.info("Verification code resent", extra={"user_id": user_id})
        return ResendResult(message=RESENT_MESSAGE, email=user_email, user_id=user_id)

    def _retry_after_seconds(self, retry_after: datetime | None) -> int:
        if retry_after is None:
            return DEFAULT_RETRY_AFTER_SECONDS
        remaining = (retry_after - self._clock()).total_seconds()
        return max(1, math.ceil(remaining))
