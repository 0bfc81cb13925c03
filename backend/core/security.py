"""One-way hashing for short-lived secrets."""

from __future__ import annotations

from functools import lru_cache

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError


@lru_cache
def _secret_hasher() -> PasswordHasher:
    # One-time codes live for minutes; a lighter cost keeps resend latency low.
    return PasswordHasher(time_cost=2, memory_cost=19_456, parallelism=1)


def hash_secret(secret: str) -> str:
    return _secret_hasher().hash(secret)


def verify_secret(secret: str, secret_hash: str) -> bool:
    """Compare ``secret`` against ``secret_hash`` in constant time."""
    try:
        return _secret_hasher().verify(secret_hash, secret)
    except (VerificationError, InvalidHashError):
        return False
