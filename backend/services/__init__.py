"""Business logic services."""

from .mailer import LoggingMailer, VerificationMailer, get_mailer
from .rate_limiter import (
    RateLimitResult,
    SlidingWindowRateLimiter,
    SupportsWindowQueries,
    VerificationWindowStore,
)
from .users import (
    find_by_email,
    find_by_oauth_identity,
    normalize_email,
    update_last_login,
    update_status,
)

__all__ = [
    "VerificationMailer",
    "LoggingMailer",
    "get_mailer",
    "RateLimitResult",
    "SlidingWindowRateLimiter",
    "SupportsWindowQueries",
    "VerificationWindowStore",
    "find_by_email",
    "find_by_oauth_identity",
    "normalize_email",
    "update_last_login",
    "update_status",
]
