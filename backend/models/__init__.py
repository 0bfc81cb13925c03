"""SQLModel models package."""

from .email_verification import EmailVerification
from .user import User, UserStatus
from .user_session import UserSession

__all__ = [
    "User",
    "UserStatus",
    "EmailVerification",
    "UserSession",
]
