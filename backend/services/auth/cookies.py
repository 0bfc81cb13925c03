"""HTTP cookie helpers for refresh-token transport."""

from __future__ import annotations

from typing import Literal

from fastapi import Response

from core.config import Settings

REFRESH_COOKIE = "refreshToken"
COOKIE_PATH = "/"
COOKIE_SAMESITE: Literal["lax", "strict", "none"] = "lax"


def cookie_secure(settings: Settings) -> bool:
    return (
        settings.app_env.strip().lower() not in {"local", "test"}
        and not settings.allow_insecure_http_cookies
    )


def set_refresh_cookie(response: Response, refresh_token: str, settings: Settings) -> None:
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=refresh_token,
        httponly=True,
        secure=cookie_secure(settings),
        samesite=COOKIE_SAMESITE,
        max_age=int(settings.refresh_token_ttl.total_seconds()),
        path=COOKIE_PATH,
    )


def clear_refresh_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=REFRESH_COOKIE,
        path=COOKIE_PATH,
        secure=cookie_secure(settings),
        samesite=COOKIE_SAMESITE,
    )
