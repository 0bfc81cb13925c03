"""Creating or linking users signed in through an OAuth provider."""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, utc_now
from core.errors import AuthError, ErrorKind
from db.errors import is_unique_violation
from db.session import unit_of_work
from models import User, UserStatus
from services.users import (
    find_by_email,
    find_by_oauth_identity,
    normalize_email,
    update_last_login,
    update_status,
)

from .identity import OAuthUserInfo

logger = logging.getLogger(__name__)


async def _resolve_user(
    session: AsyncSession,
    info: OAuthUserInfo,
    provider: str,
    *,
    email: str,
) -> User:
    user = await find_by_oauth_identity(session, provider=provider, external_id=info.external_id)
    if user is not None:
        return user

    user = await find_by_email(session, email)
    if user is not None:
        if user.oauth_id is not None and (user.oauth_provider, user.oauth_id) != (provider, info.external_id):
            raise AuthError(
                ErrorKind.CONFLICT,
                "Email is linked to a different sign-in account",
            )
        user.oauth_provider = provider
        user.oauth_id = info.external_id
        logger.info("Linked OAuth identity", extra={"user_id": user.id, "provider": provider})
    else:
        user = User(
            first_name=info.first_name,
            last_name=info.last_name,
            email=email,
            oauth_provider=provider,
            oauth_id=info.external_id,
            status=UserStatus.ACTIVE.value,
        )
        session.add(user)
        logger.info("Provisioned OAuth user", extra={"user_id": user.id, "provider": provider})

    if not user.first_name and info.first_name:
        user.first_name = info.first_name
    if not user.last_name and info.last_name:
        user.last_name = info.last_name
    return user


async def provision_oauth_user(
    session: AsyncSession,
    info: OAuthUserInfo,
    provider: str,
    *,
    clock: Clock = utc_now,
) -> User:
    """Return the local user for a verified provider identity.

    Known identities are reused, an existing account with the same email
    gets the identity linked, and otherwise a new active user is created.
    The provider has confirmed the email, so pending users are activated.
    A concurrent first sign-in losing the insert race re-reads the winner.
    """
    email = normalize_email(info.email)
    try:
        async with unit_of_work(session):
            user = await _resolve_user(session, info, provider, email=email)
            if user.status == UserStatus.SUSPENDED.value:
                raise AuthError(ErrorKind.UNAUTHORIZED, "Account is suspended")
            if user.status == UserStatus.PENDING_VERIFICATION.value:
                update_status(user, UserStatus.ACTIVE)
            update_last_login(user, at=clock())
    except IntegrityError as exc:
        if not is_unique_violation(exc):
            raise
        user = await find_by_oauth_identity(session, provider=provider, external_id=info.external_id)
        if user is None:
            raise AuthError(
                ErrorKind.CONFLICT,
                "Email is linked to a different sign-in account",
            ) from exc
        async with unit_of_work(session):
            update_last_login(user, at=clock())
    return user
