"""Account registration with email verification."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, utc_now
from core.errors import AuthError, ErrorKind
from db.errors import is_unique_violation
from db.session import unit_of_work
from models import User, UserStatus
from services.mailer import VerificationMailer
from services.users import find_by_email, normalize_email

from .otp import OneTimeCodeService
from .otp_resend import DEFAULT_OTP_TTL, deliver_code, new_verification

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = "User with that email already exists"


@dataclass(frozen=True)
class RegistrationResult:
    user_id: str
    email: str


async def register_user(
    session: AsyncSession,
    *,
    first_name: str,
    last_name: str,
    email: str,
    mailer: VerificationMailer,
    codes: OneTimeCodeService | None = None,
    ttl: timedelta = DEFAULT_OTP_TTL,
    clock: Clock = utc_now,
) -> RegistrationResult:
    """Create a pending user and send the first verification code."""
    codes = codes or OneTimeCodeService()
    normalized_email = normalize_email(email)
    if await find_by_email(session, normalized_email) is not None:
        raise AuthError(ErrorKind.CONFLICT, CONFLICT_MESSAGE)

    code = codes.generate_code()
    now = clock()
    user = User(
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        email=normalized_email,
        status=UserStatus.PENDING_VERIFICATION.value,
    )
    user_id = user.id
    try:
        async with unit_of_work(session):
            session.add(user)
            await session.flush()
            session.add(new_verification(user_id, codes.hash_code(code), now=now, ttl=ttl))
    except IntegrityError as exc:
        if is_unique_violation(exc, column="email"):
            raise AuthError(ErrorKind.CONFLICT, CONFLICT_MESSAGE) from exc
        raise

    await deliver_code(mailer, user_id=user_id, email=normalized_email, code=code)
    logger.info("User registered", extra={"user_id": user_id})
    return RegistrationResult(user_id=user_id, email=normalized_email)
