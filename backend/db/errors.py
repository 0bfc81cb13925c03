"""Database error helpers."""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

UNIQUE_VIOLATION_SQLSTATE = "23505"


def _error_text(error: IntegrityError) -> str:
    return str(getattr(error, "orig", None) or error).lower()


def is_unique_violation(error: IntegrityError, *, column: str | None = None) -> bool:
    """Return True when ``error`` is a unique-constraint conflict.

    With ``column`` set, the conflict must also mention that column or a
    constraint named after it.
    """
    original = getattr(error, "orig", None)
    sqlstate = getattr(original, "sqlstate", None) or getattr(original, "pgcode", None)
    message = _error_text(error)
    matched = sqlstate == UNIQUE_VIOLATION_SQLSTATE or (
        "duplicate key" in message or "unique constraint" in message
    )
    if not matched or column is None:
        return matched
    return column.lower() in message


__all__ = ["is_unique_violation"]
