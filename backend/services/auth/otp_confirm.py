"""Confirming an email address with a one-time code."""

from __future__ import annotations

import logging
from typing import Any, cast

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from core.clock import Clock, ensure_aware, utc_now
from core.errors import AuthError, ErrorKind
from db.session import unit_of_work
from models import EmailVerification, User, UserStatus
from services.users import find_by_email, update_last_login, update_status

from .otp import OneTimeCodeService

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


async def get_pending_verification(
    session: AsyncSession,
    user_id: str,
    *,
    lock_for_update: bool = False,
) -> EmailVerification | None:
    """Return the newest verification record that is neither used nor replaced."""
    superseded_column = cast(Any, EmailVerification.superseded_at)
    created_at_column = cast(Any, EmailVerification.created_at)
    stmt = (
        select(EmailVerification)
        .where(
            _eq(EmailVerification.user_id, user_id),
            _eq(EmailVerification.verified, False),
            cast(ColumnElement[bool], superseded_column.is_(None)),
        )
        .order_by(created_at_column.desc())
        .limit(1)
    )
    if lock_for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def confirm_email(
    session: AsyncSession,
    *,
    email: str,
    code: str,
    codes: OneTimeCodeService | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    clock: Clock = utc_now,
) -> User:
    """Check ``code`` against the user's pending record and activate the user."""
    codes = codes or OneTimeCodeService()
    user = await find_by_email(session, email)
    if user is None:
        raise AuthError(ErrorKind.NOT_FOUND, "User not found")
    if user.status != UserStatus.PENDING_VERIFICATION.value:
        raise AuthError(ErrorKind.BAD_REQUEST, "User is already verified")

    user_id = user.id
    async with unit_of_work(session):
        record = await get_pending_verification(session, user_id, lock_for_update=True)
        if record is None:
            raise AuthError(ErrorKind.BAD_REQUEST, "No pending verification code")
        now = clock()
        if ensure_aware(record.expires_at) <= now:
            raise AuthError(ErrorKind.BAD_REQUEST, "Verification code has expired")
        if record.attempts >= max_attempts:
            raise AuthError(
                ErrorKind.BAD_REQUEST,
                "Too many failed attempts. Request a new code.",
            )

        matched = codes.verify_code(code, record.otp_hash)
        if matched:
            record.verified = True
            update_status(user, UserStatus.ACTIVE)
            update_last_login(user, at=now)
        else:
            # The failed attempt is committed before it is reported.
            record.attempts += 1
        attempts = record.attempts

    if not matched:
        logger.info(
            "Verification code mismatch",
            extra={"user_id": user_id, "attempts": attempts},
        )
        raise AuthError(ErrorKind.BAD_REQUEST, "Invalid verification code")

    logger.info("Email verified", extra={"user_id": user_id})
    return user
