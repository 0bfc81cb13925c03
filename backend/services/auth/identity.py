"""Verification of identity tokens issued by third-party sign-in providers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import jwt

from core.clock import Clock, utc_now
from core.config import Settings
from core.errors import AuthError, ErrorKind

from .jwks import RemoteKeySet

logger = logging.getLogger(__name__)

APPLE_PROVIDER = "apple"
ALLOWED_ALGORITHMS = ["RS256", "ES256"]


@dataclass
class OAuthUserInfo:
    """Identity asserted by a provider, normalized across providers."""

    email: str
    first_name: str
    last_name: str
    external_id: str


class SupportsSigningKeys(Protocol):
    async def get_signing_key_from_jwt(self, token: str) -> jwt.PyJWK: ...


class RemoteIdentityVerifier:
    """Checks a provider-signed identity token before trusting its claims.

    The signature must match one of the provider's published keys, ``iss``
    must equal the provider issuer, ``aud`` must equal this application's
    client id and ``exp`` must lie ahead, checked in that order so a token
    that is both expired and misdirected reports the mismatch.
    """

    def __init__(
        self,
        *,
        provider: str,
        issuer: str,
        client_id: str,
        key_set: SupportsSigningKeys,
        leeway: int = 0,
        clock: Clock = utc_now,
    ) -> None:
        self.provider = provider
        self.issuer = issuer
        self.client_id = client_id
        self.key_set = key_set
        self.leeway = leeway
        self._clock = clock

    async def verify_identity_token(self, token: str) -> OAuthUserInfo:
        if not self.client_id:
            raise AuthError(
                ErrorKind.CONFIGURATION,
                f"{self.provider} client id is not configured",
            )

        try:
            payload = await self._decode(token)
        except jwt.ExpiredSignatureError as exc:
            self._log_failure("expired", exc)
            raise AuthError(ErrorKind.TOKEN_EXPIRED, f"{self._label} token has expired") from exc
        except jwt.InvalidAudienceError as exc:
            self._log_failure("audience", exc)
            raise AuthError(ErrorKind.AUDIENCE_MISMATCH, f"{self._label} token audience mismatch") from exc
        except jwt.InvalidIssuerError as exc:
            self._log_failure("issuer", exc)
            raise AuthError(ErrorKind.ISSUER_MISMATCH, f"{self._label} token issuer mismatch") from exc
        except jwt.MissingRequiredClaimError as exc:
            self._log_failure(f"missing {exc.claim}", exc)
            if exc.claim == "aud":
                raise AuthError(ErrorKind.AUDIENCE_MISMATCH, f"{self._label} token audience mismatch") from exc
            if exc.claim == "iss":
                raise AuthError(ErrorKind.ISSUER_MISMATCH, f"{self._label} token issuer mismatch") from exc
            raise self._wrap(exc) from exc
        except Exception as exc:
            logger.warning(
                "Identity token verification failed",
                extra={"provider": self.provider, "reason": type(exc).__name__},
                exc_info=exc,
            )
            raise self._wrap(exc) from exc

        subject = payload.get("sub")
        email = payload.get("email")
        if not subject or not email:
            logger.warning(
                "Identity token missing required claims",
                extra={"provider": self.provider},
            )
            raise AuthError(
                ErrorKind.INVALID_TOKEN,
                f"{self._label} token missing required claims (sub, email)",
            )

        # Name fields arrive out-of-band on first authorization only.
        return OAuthUserInfo(
            email=str(email),
            first_name="",
            last_name="",
            external_id=str(subject),
        )

    async def _decode(self, token: str) -> dict[str, Any]:
        signing_key = await self.key_set.get_signing_key_from_jwt(token)
        payload = jwt.decode(
            token,
            signing_key.key,
            algorithms=ALLOWED_ALGORITHMS,
            audience=self.client_id,
            issuer=self.issuer,
            leeway=self.leeway,
            options={"require": ["exp", "iss", "aud"], "verify_exp": False},
        )
        # Issuer and audience failures take precedence over expiry.
        try:
            expires_at = int(payload["exp"])
        except (TypeError, ValueError) as exc:
            raise jwt.DecodeError("Expiration Time claim (exp) must be an integer.") from exc
        if expires_at <= int(self._clock().timestamp()) - self.leeway:
            raise jwt.ExpiredSignatureError("Signature has expired")
        return payload

    @property
    def _label(self) -> str:
        return self.provider.capitalize()

    def _wrap(self, exc: Exception) -> AuthError:
        return AuthError(
            ErrorKind.INVALID_TOKEN,
            f"Failed to verify {self._label} token: {exc}",
        )

    def _log_failure(self, reason: str, exc: Exception) -> None:
        logger.warning(
            "Identity token rejected",
            extra={"provider": self.provider, "reason": reason, "detail": str(exc)},
        )


def build_apple_verifier(
    settings: Settings,
    *,
    key_set: SupportsSigningKeys | None = None,
) -> RemoteIdentityVerifier:
    if key_set is None:
        key_set = RemoteKeySet(
            settings.apple_keys_url,
            cache_ttl=settings.jwks_cache_ttl_seconds,
            timeout=settings.jwks_fetch_timeout_seconds,
        )
    return RemoteIdentityVerifier(
        provider=APPLE_PROVIDER,
        issuer=settings.apple_issuer,
        client_id=settings.apple_client_id,
        key_set=key_set,
    )
