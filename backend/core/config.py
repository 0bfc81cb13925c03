"""Application settings loaded from the environment."""

from __future__ import annotations

import re
from datetime import timedelta
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([smhdw]?)\s*$")
_DURATION_UNITS = {
    "": 1,
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 60 * 60 * 24,
    "w": 60 * 60 * 24 * 7,
}


def parse_duration(value: str) -> timedelta:
    """Convert a compact duration such as ``15m`` or ``7d`` into a timedelta.

    A bare number is read as seconds.
    """
    match = _DURATION_PATTERN.fullmatch(value)
    if match is None:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    seconds = int(amount) * _DURATION_UNITS[unit]
    if seconds <= 0:
        raise ValueError(f"Duration must be positive: {value!r}")
    return timedelta(seconds=seconds)


class Settings(BaseSettings):
    """Runtime configuration, validated once at startup."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    app_env: str = Field(default="local")
    log_level: str = Field(default="info")
    database_url: str = Field(default="sqlite+aiosqlite:///./authcore.db")
    allow_insecure_http_cookies: bool = Field(default=False)

    jwt_access_secret: str = Field(default="")
    jwt_refresh_secret: str = Field(default="")
    jwt_access_expiration: str = Field(default="15m")
    jwt_refresh_expiration: str = Field(default="7d")

    apple_client_id: str = Field(default="")
    apple_keys_url: str = Field(default="https://appleid.apple.com/auth/keys")
    apple_issuer: str = Field(default="https://appleid.apple.com")
    jwks_cache_ttl_seconds: int = Field(default=3600, ge=0)
    jwks_fetch_timeout_seconds: float = Field(default=10.0, gt=0)

    otp_expiration_minutes: int = Field(default=15, gt=0)
    otp_max_attempts: int = Field(default=5, gt=0)
    otp_resend_limit: int = Field(default=3, ge=0)
    otp_resend_window_seconds: int = Field(default=300, gt=0)

    max_active_sessions: int = Field(default=5, gt=0)

    @field_validator("jwt_access_expiration", "jwt_refresh_expiration")
    @classmethod
    def _validate_duration(cls, value: str) -> str:
        parse_duration(value)
        return value.strip()

    @property
    def access_token_ttl(self) -> timedelta:
        return parse_duration(self.jwt_access_expiration)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return parse_duration(self.jwt_refresh_expiration)

    @property
    def otp_ttl(self) -> timedelta:
        return timedelta(minutes=self.otp_expiration_minutes)


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()


settings = get_settings()
