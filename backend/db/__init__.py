"""Database helpers."""

from .errors import is_unique_violation
from .session import async_engine, async_session_maker, get_session, unit_of_work

__all__ = [
    "async_engine",
    "async_session_maker",
    "get_session",
    "unit_of_work",
    "is_unique_violation",
]
