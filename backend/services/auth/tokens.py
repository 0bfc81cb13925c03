"""Access- and refresh-token signing and verification."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Literal
from uuid import uuid4

import jwt

from core.clock import Clock, utc_now
from core.config import Settings
from core.errors import AuthError, ErrorKind

TokenType = Literal["access", "refresh"]
ALGORITHM = "HS256"


@dataclass(frozen=True)
class TokenClaims:
    sub: str
    email: str


class TokenCodec:
    """Signs and verifies one class of bearer token with its own secret."""

    def __init__(
        self,
        secret: str,
        lifetime: timedelta,
        token_type: TokenType,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._secret = secret
        self.lifetime = lifetime
        self.token_type = token_type
        self._clock = clock

    @classmethod
    def access(cls, settings: Settings, *, clock: Clock = utc_now) -> TokenCodec:
        return cls(settings.jwt_access_secret, settings.access_token_ttl, "access", clock=clock)

    @classmethod
    def refresh(cls, settings: Settings, *, clock: Clock = utc_now) -> TokenCodec:
        return cls(settings.jwt_refresh_secret, settings.refresh_token_ttl, "refresh", clock=clock)

    def _require_secret(self) -> str:
        if not self._secret:
            raise AuthError(
                ErrorKind.CONFIGURATION,
                f"JWT {self.token_type} secret is not configured",
            )
        return self._secret

    def issue(self, claims: TokenClaims) -> str:
        secret = self._require_secret()
        issued_at = self._clock()
        payload: dict[str, Any] = {
            "sub": claims.sub,
            "email": claims.email,
            "type": self.token_type,
            "jti": uuid4().hex,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self.lifetime).timestamp()),
        }
        return jwt.encode(payload, secret, algorithm=ALGORITHM)

    def decode(self, token: str) -> dict[str, Any]:
        """Return the verified payload of ``token``."""
        secret = self._require_secret()
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[ALGORITHM],
                options={
                    "require": ["exp", "iat", "sub"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.PyJWTError as exc:
            raise AuthError(ErrorKind.INVALID_TOKEN, f"Invalid {self.token_type} token") from exc

        if payload.get("type") != self.token_type:
            raise AuthError(ErrorKind.INVALID_TOKEN, f"Invalid {self.token_type} token")
        # Time claims are checked against the injected clock, after the signature.
        if int(payload["exp"]) <= int(self._clock().timestamp()):
            raise AuthError(ErrorKind.TOKEN_EXPIRED, f"{self.token_type.capitalize()} token has expired")
        return payload

    def verify(self, token: str) -> TokenClaims:
        payload = self.decode(token)
        sub = payload.get("sub")
        email = payload.get("email")
        if not isinstance(sub, str) or not sub or not isinstance(email, str) or not email:
            raise AuthError(ErrorKind.INVALID_TOKEN, f"Invalid {self.token_type} token")
        return TokenClaims(sub=sub, email=email)


class TokenService:
    """Access and refresh codecs with independent secrets and lifetimes."""

    def __init__(self, access: TokenCodec, refresh: TokenCodec) -> None:
        self.access = access
        self.refresh = refresh

    @classmethod
    def from_settings(cls, settings: Settings, *, clock: Clock = utc_now) -> TokenService:
        return cls(
            TokenCodec.access(settings, clock=clock),
            TokenCodec.refresh(settings, clock=clock),
        )

    def issue_access_token(self, claims: TokenClaims) -> str:
        return self.access.issue(claims)

    def issue_refresh_token(self, claims: TokenClaims) -> str:
        return self.refresh.issue(claims)

    def verify_access_token(self, token: str) -> TokenClaims:
        return self.access.verify(token)

    def verify_refresh_token(self, token: str) -> TokenClaims:
        return self.refresh.verify(token)

    def issue_pair(self, claims: TokenClaims) -> tuple[str, str]:
        return self.issue_access_token(claims), self.issue_refresh_token(claims)
