"""Maintenance script to delete expired sessions and spent verification codes.

Usage:
    uv run python scripts/prune_expired_auth_records.py

Environment overrides:
    AUTH_PRUNE_BATCH_SIZE=500
    AUTH_VERIFICATION_RETENTION_HOURS=24
    AUTH_MAX_ROWS_PER_RUN=5000
    AUTH_MAX_ELAPSED_SECONDS=30

Verification records younger than OTP_RESEND_WINDOW_SECONDS are kept
regardless of the retention.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from datetime import timedelta
from pathlib import Path
from time import perf_counter

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.append(str(ROOT_DIR))

from core.clock import utc_now  # noqa: E402
from core.config import get_settings  # noqa: E402
from db.session import async_session_maker  # noqa: E402
from services.auth.cleanup import (  # noqa: E402
    DEFAULT_VERIFICATION_RETENTION,
    PRUNE_BATCH_SIZE,
    prune_expired_sessions,
    prune_stale_verifications,
)

BATCH_SIZE_ENV = "AUTH_PRUNE_BATCH_SIZE"
RETENTION_HOURS_ENV = "AUTH_VERIFICATION_RETENTION_HOURS"
MAX_ROWS_PER_RUN_ENV = "AUTH_MAX_ROWS_PER_RUN"
MAX_ELAPSED_SECONDS_ENV = "AUTH_MAX_ELAPSED_SECONDS"
DEFAULT_MAX_ROWS_PER_RUN = 5000
DEFAULT_MAX_ELAPSED_SECONDS = 30

logger = logging.getLogger("scripts.prune_expired_auth_records")


def _parse_positive_int(raw_value: str | None, *, default: int, label: str) -> int:
    if raw_value is None or raw_value.strip() == "":
        return default
    try:
        parsed = int(raw_value)
    except ValueError as exc:
        raise ValueError(f"{label} must be an integer") from exc
    if parsed <= 0:
        raise ValueError(f"{label} must be positive")
    return parsed


def _parse_non_negative_int(raw_value: str | None, *, default: int, label: str) -> int:
    if raw_value is None or raw_value.strip() == "":
        return default
    try:
        parsed = int(raw_value)
    except ValueError as exc:
        raise ValueError(f"{label} must be an integer") from exc
    if parsed < 0:
        raise ValueError(f"{label} must be non-negative")
    return parsed


async def _prune_batch(
    *,
    batch_size: int,
    retention: timedelta,
    resend_window: timedelta,
) -> tuple[int, int]:
    now = utc_now()
    async with async_session_maker() as session:
        sessions_deleted = await prune_expired_sessions(session, now=now, batch_size=batch_size)
        verifications_deleted = await prune_stale_verifications(
            session,
            now=now,
            retention=retention,
            resend_window=resend_window,
            batch_size=batch_size,
        )
    return sessions_deleted, verifications_deleted


async def run() -> None:
    batch_size = _parse_positive_int(
        os.getenv(BATCH_SIZE_ENV),
        default=PRUNE_BATCH_SIZE,
        label=BATCH_SIZE_ENV,
    )
    retention_hours = _parse_non_negative_int(
        os.getenv(RETENTION_HOURS_ENV),
        default=int(DEFAULT_VERIFICATION_RETENTION.total_seconds() // 3600),
        label=RETENTION_HOURS_ENV,
    )
    max_rows_per_run = _parse_positive_int(
        os.getenv(MAX_ROWS_PER_RUN_ENV),
        default=DEFAULT_MAX_ROWS_PER_RUN,
        label=MAX_ROWS_PER_RUN_ENV,
    )
    max_elapsed_seconds = _parse_positive_int(
        os.getenv(MAX_ELAPSED_SECONDS_ENV),
        default=DEFAULT_MAX_ELAPSED_SECONDS,
        label=MAX_ELAPSED_SECONDS_ENV,
    )
    resend_window = timedelta(seconds=get_settings().otp_resend_window_seconds)

    started_at = perf_counter()
    sessions_deleted = 0
    verifications_deleted = 0
    stop_reason = "completed"

    while True:
        if sessions_deleted + verifications_deleted >= max_rows_per_run:
            stop_reason = "max_rows"
            break
        if perf_counter() - started_at >= max_elapsed_seconds:
            stop_reason = "max_elapsed_seconds"
            break

        batch_sessions, batch_verifications = await _prune_batch(
            batch_size=batch_size,
            retention=timedelta(hours=retention_hours),
            resend_window=resend_window,
        )
        sessions_deleted += batch_sessions
        verifications_deleted += batch_verifications
        if batch_sessions < batch_size and batch_verifications < batch_size:
            break

    elapsed_ms = int((perf_counter() - started_at) * 1000)
    logger.info(
        "Auth record prune complete: sessions_deleted=%s, verifications_deleted=%s, "
        "elapsed_ms=%s, stop_reason=%s",
        sessions_deleted,
        verifications_deleted,
        elapsed_ms,
        stop_reason,
    )


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    asyncio.run(run())


if __name__ == "__main__":
    main()
