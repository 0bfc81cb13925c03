"""Verification email delivery."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class VerificationMailer(Protocol):
    async def send_verification_email(self, email: str, code: str) -> None: ...


class LoggingMailer:
    """Development mailer that records deliveries in the log.

    The code itself is only written at DEBUG level.
    """

    async def send_verification_email(self, email: str, code: str) -> None:
        logger.info("Verification email queued", extra={"email": email})
        logger.debug("Verification code for %s: %s", email, code)


def get_mailer() -> VerificationMailer:
    return LoggingMailer()
