"""Core configuration, errors and hashing helpers."""

from .clock import Clock, ensure_aware, utc_now
from .config import Settings, get_settings, parse_duration, settings
from .errors import AuthError, ErrorKind, ErrorResponse
from .security import hash_secret, verify_secret

__all__ = [
    "Clock",
    "ensure_aware",
    "utc_now",
    "Settings",
    "get_settings",
    "parse_duration",
    "settings",
    "AuthError",
    "ErrorKind",
    "ErrorResponse",
    "hash_secret",
    "verify_secret",
]
