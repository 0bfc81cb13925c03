"""One-time code generation and hashing."""

from __future__ import annotations

import secrets
from dataclasses import dataclass

from core.security import hash_secret, verify_secret

DEFAULT_CODE_LENGTH = 6


@dataclass(frozen=True)
class OneTimeCodeService:
    length: int = DEFAULT_CODE_LENGTH

    def generate_code(self) -> str:
        return f"{secrets.randbelow(10**self.length):0{self.length}d}"

    def hash_code(self, code: str) -> str:
        return hash_secret(code)

    def verify_code(self, code: str, code_hash: str) -> bool:
        return verify_secret(code, code_hash)
