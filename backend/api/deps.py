"""FastAPI dependencies wiring services to request scope."""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, get_settings
from db.session import get_session
from services.auth import (
    OneTimeCodeService,
    OtpResendService,
    RemoteIdentityVerifier,
    TokenService,
    build_apple_verifier,
)
from services.mailer import VerificationMailer, get_mailer
from services.rate_limiter import SlidingWindowRateLimiter, VerificationWindowStore


async def get_db() -> AsyncIterator[AsyncSession]:
    async for session in get_session():
        yield session


def get_app_settings() -> Settings:
    return get_settings()


def get_token_service(settings: Settings = Depends(get_app_settings)) -> TokenService:
    return TokenService.from_settings(settings)


def get_code_service() -> OneTimeCodeService:
    return OneTimeCodeService()


def get_verification_mailer() -> VerificationMailer:
    return get_mailer()


_cached_identity_verifier: RemoteIdentityVerifier | None = None


def get_identity_verifier() -> RemoteIdentityVerifier:
    """Singleton accessor so the provider key set stays cached across requests."""
    global _cached_identity_verifier
    if _cached_identity_verifier is None:
        _cached_identity_verifier = build_apple_verifier(get_app_settings())
    return _cached_identity_verifier


def set_identity_verifier(verifier: RemoteIdentityVerifier | None) -> None:
    """Override the cached identity verifier (primarily for tests)."""
    global _cached_identity_verifier
    _cached_identity_verifier = verifier


def get_otp_resend_service(
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    codes: OneTimeCodeService = Depends(get_code_service),
    mailer: VerificationMailer = Depends(get_verification_mailer),
) -> OtpResendService:
    limiter = SlidingWindowRateLimiter(
        VerificationWindowStore(session),
        limit=settings.otp_resend_limit,
        window_seconds=settings.otp_resend_window_seconds,
    )
    return OtpResendService(
        session,
        limiter=limiter,
        mailer=mailer,
        codes=codes,
        ttl=settings.otp_ttl,
    )
