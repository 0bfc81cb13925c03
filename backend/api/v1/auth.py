"""Authentication endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import (
    get_app_settings,
    get_code_service,
    get_db,
    get_identity_verifier,
    get_otp_resend_service,
    get_token_service,
    get_verification_mailer,
)
from core.config import Settings
from core.errors import AuthError, ErrorKind
from models import User
from services.auth import (
    APPLE_PROVIDER,
    REFRESH_COOKIE,
    IssuedTokens,
    OneTimeCodeService,
    OtpResendService,
    RemoteIdentityVerifier,
    TokenService,
    clear_refresh_cookie,
    confirm_email,
    provision_oauth_user,
    register_user,
    revoke_session,
    rotate_session,
    set_refresh_cookie,
    start_session,
)
from services.mailer import VerificationMailer

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(CamelModel):
    first_name: str = Field(min_length=2, max_length=255)
    last_name: str = Field(min_length=2, max_length=255)
    business_email: EmailStr


class ResendOtpRequest(CamelModel):
    email: EmailStr


class VerifyOtpRequest(CamelModel):
    email: EmailStr
    code: str = Field(pattern=r"^\d{4,10}$")


class AppleName(CamelModel):
    first_name: str | None = None
    last_name: str | None = None


class AppleUser(CamelModel):
    name: AppleName | None = None
    email: EmailStr | None = None


class AppleSignInRequest(CamelModel):
    id_token: str = Field(min_length=1)
    user: AppleUser | None = None


class UserSummary(CamelModel):
    id: str
    email: str
    first_name: str
    last_name: str


class AuthPayload(CamelModel):
    access_token: str
    refresh_token: str
    user: UserSummary


class Envelope(CamelModel):
    success: bool = True
    message: str
    data: dict[str, Any] | None = None


def _auth_envelope(message: str, issued: IssuedTokens, user: User) -> Envelope:
    payload = AuthPayload(
        access_token=issued.access_token,
        refresh_token=issued.refresh_token,
        user=UserSummary(
            id=issued.user_id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
        ),
    )
    return Envelope(message=message, data=payload.model_dump(by_alias=True))


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=Envelope)
async def register(
    payload: RegisterRequest,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    codes: OneTimeCodeService = Depends(get_code_service),
    mailer: VerificationMailer = Depends(get_verification_mailer),
) -> Envelope:
    result = await register_user(
        session,
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=str(payload.business_email),
        mailer=mailer,
        codes=codes,
        ttl=settings.otp_ttl,
    )
    return Envelope(
        message="Registration successful. Check your email for a verification code.",
        data={"userId": result.user_id, "email": result.email},
    )


@router.post("/resend-otp", response_model=Envelope)
async def resend_otp(
    payload: ResendOtpRequest,
    service: OtpResendService = Depends(get_otp_resend_service),
) -> Envelope:
    result = await service.resend_verification_code(str(payload.email))
    return Envelope(
        message=result.message,
        data={"message": result.message, "email": result.email, "userId": result.user_id},
    )


@router.post("/verify-otp", response_model=Envelope)
async def verify_otp(
    payload: VerifyOtpRequest,
    response: Response,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    codes: OneTimeCodeService = Depends(get_code_service),
    tokens: TokenService = Depends(get_token_service),
) -> Envelope:
    user = await confirm_email(
        session,
        email=str(payload.email),
        code=payload.code,
        codes=codes,
        max_attempts=settings.otp_max_attempts,
    )
    issued = await start_session(
        session,
        user,
        tokens,
        max_active_sessions=settings.max_active_sessions,
    )
    set_refresh_cookie(response, issued.refresh_token, settings)
    return _auth_envelope("Email verified", issued, user)


@router.post("/apple", response_model=Envelope)
async def apple_sign_in(
    payload: AppleSignInRequest,
    response: Response,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    verifier: RemoteIdentityVerifier = Depends(get_identity_verifier),
    tokens: TokenService = Depends(get_token_service),
) -> Envelope:
    info = await verifier.verify_identity_token(payload.id_token)

    # Apple sends the name alongside the token on first authorization only.
    # The email always comes from the verified token.
    if payload.user is not None and payload.user.name is not None:
        info.first_name = payload.user.name.first_name or info.first_name
        info.last_name = payload.user.name.last_name or info.last_name

    user = await provision_oauth_user(session, info, APPLE_PROVIDER)
    issued = await start_session(
        session,
        user,
        tokens,
        max_active_sessions=settings.max_active_sessions,
    )
    set_refresh_cookie(response, issued.refresh_token, settings)
    logger.info("Apple sign-in succeeded", extra={"user_id": issued.user_id})
    return _auth_envelope("Authentication successful", issued, user)


@router.post("/refresh", response_model=Envelope)
async def refresh_tokens(
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    tokens: TokenService = Depends(get_token_service),
) -> Envelope:
    refresh_token = request.cookies.get(REFRESH_COOKIE)
    if not refresh_token:
        raise AuthError(ErrorKind.UNAUTHORIZED, "Missing refresh token")

    issued = await rotate_session(session, refresh_token, tokens)
    set_refresh_cookie(response, issued.refresh_token, settings)
    return Envelope(
        message="Tokens refreshed",
        data={"accessToken": issued.access_token, "refreshToken": issued.refresh_token},
    )


@router.post("/logout", response_model=Envelope)
async def logout(
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> Envelope:
    refresh_token = request.cookies.get(REFRESH_COOKIE)
    if refresh_token:
        await revoke_session(session, refresh_token)
    clear_refresh_cookie(response, settings)
    return Envelope(message="Logged out")
