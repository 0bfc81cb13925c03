"""Authentication domain services."""

from .cookies import REFRESH_COOKIE, clear_refresh_cookie, set_refresh_cookie
from .identity import (
    APPLE_PROVIDER,
    OAuthUserInfo,
    RemoteIdentityVerifier,
    build_apple_verifier,
)
from .jwks import KeyNotFoundError, RemoteKeySet
from .otp import OneTimeCodeService
from .otp_confirm import confirm_email, get_pending_verification
from .otp_resend import OtpResendService, ResendResult, supersede_pending_verifications
from .provisioning import provision_oauth_user
from .registration import RegistrationResult, register_user
from .sessions import (
    MAX_ACTIVE_SESSIONS,
    IssuedTokens,
    create_session,
    hash_refresh_token,
    revoke_session,
    rotate_session,
    start_session,
)
from .tokens import TokenClaims, TokenCodec, TokenService

__all__ = [
    "REFRESH_COOKIE",
    "set_refresh_cookie",
    "clear_refresh_cookie",
    "APPLE_PROVIDER",
    "OAuthUserInfo",
    "RemoteIdentityVerifier",
    "build_apple_verifier",
    "KeyNotFoundError",
    "RemoteKeySet",
    "OneTimeCodeService",
    "confirm_email",
    "get_pending_verification",
    "OtpResendService",
    "ResendResult",
    "supersede_pending_verifications",
    "provision_oauth_user",
    "RegistrationResult",
    "register_user",
    "MAX_ACTIVE_SESSIONS",
    "IssuedTokens",
    "create_session",
    "hash_refresh_token",
    "revoke_session",
    "rotate_session",
    "start_session",
    "TokenClaims",
    "TokenCodec",
    "TokenService",
]
