"""End-to-end tests for authentication endpoints."""

from __future__ import annotations

from typing import Any, cast

import pytest
from fastapi import FastAPI
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from api.deps import get_identity_verifier
from core.errors import AuthError, ErrorKind
from models import EmailVerification, User, UserSession, UserStatus
from services.auth import REFRESH_COOKIE, OAuthUserInfo, RemoteIdentityVerifier


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def build_payload(email: str = "grace@example.com") -> dict[str, str]:
    return {"firstName": "Grace", "lastName": "Hopper", "businessEmail": email}


class StubVerifier:
    def __init__(self, external_id: str = "001234.abcdef", error: AuthError | None = None) -> None:
        self.external_id = external_id
        self.error = error
        self.tokens: list[str] = []

    async def verify_identity_token(self, token: str) -> OAuthUserInfo:
        self.tokens.append(token)
        if self.error is not None:
            raise self.error
        return OAuthUserInfo(
            email="apple-user@example.com",
            first_name="",
            last_name="",
            external_id=self.external_id,
        )


async def _register_and_verify(async_client: AsyncClient, mailer) -> dict[str, Any]:
    await async_client.post("/api/v1/auth/register", json=build_payload())
    response = await async_client.post(
        "/api/v1/auth/verify-otp",
        json={"email": "grace@example.com", "code": mailer.last_code_for("grace@example.com")},
    )
    assert response.status_code == 200
    return response.json()["data"]


def _use_refresh_cookie(async_client: AsyncClient, token: str | None) -> None:
    async_client.cookies.clear()
    if token is not None:
        async_client.cookies.set(REFRESH_COOKIE, token)


@pytest.mark.asyncio
async def test_health(async_client: AsyncClient) -> None:
    response = await async_client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_register_creates_pending_user_and_sends_code(
    async_client: AsyncClient, db_session: AsyncSession, mailer
) -> None:
    response = await async_client.post(
        "/api/v1/auth/register",
        json=build_payload("Grace@Example.com"),
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["email"] == "grace@example.com"

    user = (await db_session.execute(select(User))).scalar_one()
    assert user.id == data["userId"]
    assert user.status == UserStatus.PENDING_VERIFICATION.value
    records = (await db_session.execute(select(EmailVerification))).scalars().all()
    assert len(records) == 1
    code = mailer.last_code_for("grace@example.com")
    assert records[0].otp_hash != code


@pytest.mark.asyncio
async def test_register_conflict(async_client: AsyncClient) -> None:
    await async_client.post("/api/v1/auth/register", json=build_payload())
    response = await async_client.post(
        "/api/v1/auth/register",
        json=build_payload("GRACE@example.com"),
    )

    assert response.status_code == 409
    assert response.json()["code"] == "CONFLICT"


@pytest.mark.asyncio
async def test_register_rejects_invalid_email(async_client: AsyncClient) -> None:
    response = await async_client.post("/api/v1/auth/register", json=build_payload("not-an-email"))

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "BAD_REQUEST"
    assert body["message"] == "Validation failed"
    assert set(body["errors"]["fieldErrors"]) == {"businessEmail"}


@pytest.mark.asyncio
async def test_missing_fields_are_reported_per_field(async_client: AsyncClient) -> None:
    response = await async_client.post("/api/v1/auth/resend-otp", json={})

    assert response.status_code == 400
    assert "email" in response.json()["errors"]["fieldErrors"]


@pytest.mark.asyncio
async def test_resend_otp_returns_user_details(async_client: AsyncClient, mailer) -> None:
    registered = await async_client.post("/api/v1/auth/register", json=build_payload())
    user_id = registered.json()["data"]["userId"]

    response = await async_client.post(
        "/api/v1/auth/resend-otp",
        json={"email": "grace@example.com"},
    )

    assert response.status_code == 200
    assert response.json()["data"] == {
        "message": "Verification code resent",
        "email": "grace@example.com",
        "userId": user_id,
    }
    assert len(mailer.sent) == 2


@pytest.mark.asyncio
async def test_resend_otp_unknown_email(async_client: AsyncClient) -> None:
    response = await async_client.post(
        "/api/v1/auth/resend-otp",
        json={"email": "ghost@example.com"},
    )

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_resend_otp_is_rate_limited(async_client: AsyncClient, mailer) -> None:
    await async_client.post("/api/v1/auth/register", json=build_payload())
    for _ in range(2):
        ok = await async_client.post("/api/v1/auth/resend-otp", json={"email": "grace@example.com"})
        assert ok.status_code == 200

    response = await async_client.post(
        "/api/v1/auth/resend-otp",
        json={"email": "grace@example.com"},
    )

    assert response.status_code == 429
    body = response.json()
    assert body["code"] == "TOO_MANY_REQUESTS"
    retry_after = body["errors"]["retryAfter"]
    assert isinstance(retry_after, int)
    assert 1 <= retry_after <= 300
    assert response.headers["Retry-After"] == str(retry_after)
    assert len(mailer.sent) == 3


@pytest.mark.asyncio
async def test_resend_otp_after_verification_is_bad_request(
    async_client: AsyncClient, mailer
) -> None:
    await _register_and_verify(async_client, mailer)

    response = await async_client.post(
        "/api/v1/auth/resend-otp",
        json={"email": "grace@example.com"},
    )

    assert response.status_code == 400
    assert response.json()["message"] == "User is already verified"


@pytest.mark.asyncio
async def test_verify_otp_issues_tokens_and_cookie(
    async_client: AsyncClient, db_session: AsyncSession, mailer
) -> None:
    await async_client.post("/api/v1/auth/register", json=build_payload())

    response = await async_client.post(
        "/api/v1/auth/verify-otp",
        json={"email": "grace@example.com", "code": mailer.last_code_for("grace@example.com")},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Email verified"
    data = body["data"]
    assert data["accessToken"]
    assert data["user"]["email"] == "grace@example.com"
    assert data["user"]["firstName"] == "Grace"
    assert response.cookies.get(REFRESH_COOKIE) == data["refreshToken"]

    sessions = (await db_session.execute(select(UserSession))).scalars().all()
    assert len(sessions) == 1
    assert sessions[0].refresh_token_hash != data["refreshToken"]


@pytest.mark.asyncio
async def test_verify_otp_with_wrong_code(async_client: AsyncClient, mailer) -> None:
    await async_client.post("/api/v1/auth/register", json=build_payload())
    code = mailer.last_code_for("grace@example.com")
    wrong = "000000" if code != "000000" else "111111"

    response = await async_client.post(
        "/api/v1/auth/verify-otp",
        json={"email": "grace@example.com", "code": wrong},
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid verification code"


@pytest.mark.asyncio
async def test_verify_otp_rejects_superseded_code(async_client: AsyncClient, mailer) -> None:
    await async_client.post("/api/v1/auth/register", json=build_payload())
    first_code = mailer.last_code_for("grace@example.com")
    await async_client.post("/api/v1/auth/resend-otp", json={"email": "grace@example.com"})
    second_code = mailer.last_code_for("grace@example.com")

    if first_code != second_code:
        stale = await async_client.post(
            "/api/v1/auth/verify-otp",
            json={"email": "grace@example.com", "code": first_code},
        )
        assert stale.status_code == 400

    fresh = await async_client.post(
        "/api/v1/auth/verify-otp",
        json={"email": "grace@example.com", "code": second_code},
    )
    assert fresh.status_code == 200


@pytest.mark.asyncio
async def test_refresh_rotates_refresh_token(async_client: AsyncClient, mailer) -> None:
    data = await _register_and_verify(async_client, mailer)
    original = data["refreshToken"]

    _use_refresh_cookie(async_client, original)
    response = await async_client.post("/api/v1/auth/refresh")

    assert response.status_code == 200
    rotated = response.json()["data"]["refreshToken"]
    assert rotated != original
    assert response.cookies.get(REFRESH_COOKIE) == rotated

    _use_refresh_cookie(async_client, original)
    replay = await async_client.post("/api/v1/auth/refresh")
    assert replay.status_code == 401
    assert replay.json()["code"] == "INVALID_TOKEN"


@pytest.mark.asyncio
async def test_refresh_without_cookie(async_client: AsyncClient) -> None:
    _use_refresh_cookie(async_client, None)
    response = await async_client.post("/api/v1/auth/refresh")

    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHORIZED"


@pytest.mark.asyncio
async def test_refresh_rejects_access_token(async_client: AsyncClient, mailer) -> None:
    data = await _register_and_verify(async_client, mailer)

    _use_refresh_cookie(async_client, data["accessToken"])
    response = await async_client.post("/api/v1/auth/refresh")

    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_TOKEN"


@pytest.mark.asyncio
async def test_logout_revokes_session(
    async_client: AsyncClient, db_session: AsyncSession, mailer
) -> None:
    data = await _register_and_verify(async_client, mailer)

    _use_refresh_cookie(async_client, data["refreshToken"])
    response = await async_client.post("/api/v1/auth/logout")
    assert response.status_code == 200
    assert response.json()["message"] == "Logged out"

    remaining = (await db_session.execute(select(func.count()).select_from(UserSession))).scalar_one()
    assert remaining == 0

    _use_refresh_cookie(async_client, data["refreshToken"])
    replay = await async_client.post("/api/v1/auth/refresh")
    assert replay.status_code == 401


@pytest.mark.asyncio
async def test_apple_sign_in_creates_user_with_profile(
    async_client: AsyncClient, app: FastAPI, db_session: AsyncSession
) -> None:
    verifier = StubVerifier()
    app.dependency_overrides[get_identity_verifier] = lambda: verifier

    response = await async_client.post(
        "/api/v1/auth/apple",
        json={
            "idToken": "identity-token",
            "user": {"name": {"firstName": "Ann", "lastName": "Apple"}},
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Authentication successful"
    user_data = body["data"]["user"]
    assert user_data["email"] == "apple-user@example.com"
    assert user_data["firstName"] == "Ann"
    assert user_data["lastName"] == "Apple"
    assert verifier.tokens == ["identity-token"]

    user = (
        await db_session.execute(select(User).where(_eq(User.id, user_data["id"])))
    ).scalar_one()
    assert user.status == UserStatus.ACTIVE.value
    assert user.oauth_id == "001234.abcdef"


@pytest.mark.asyncio
async def test_apple_sign_in_caps_active_sessions(
    async_client: AsyncClient, app: FastAPI, db_session: AsyncSession
) -> None:
    app.dependency_overrides[get_identity_verifier] = lambda: StubVerifier()

    for _ in range(7):
        response = await async_client.post("/api/v1/auth/apple", json={"idToken": "identity-token"})
        assert response.status_code == 200

    count = (await db_session.execute(select(func.count()).select_from(UserSession))).scalar_one()
    assert count == 5


@pytest.mark.asyncio
async def test_apple_sign_in_maps_verification_errors(
    async_client: AsyncClient, app: FastAPI
) -> None:
    error = AuthError(ErrorKind.AUDIENCE_MISMATCH, "Apple token audience mismatch")
    app.dependency_overrides[get_identity_verifier] = lambda: StubVerifier(error=error)

    response = await async_client.post("/api/v1/auth/apple", json={"idToken": "identity-token"})

    assert response.status_code == 401
    assert response.json()["code"] == "AUDIENCE_MISMATCH"


@pytest.mark.asyncio
async def test_apple_sign_in_hides_configuration_errors(
    async_client: AsyncClient, app: FastAPI
) -> None:
    unconfigured = RemoteIdentityVerifier(
        provider="apple",
        issuer="https://appleid.apple.com",
        client_id="",
        key_set=object(),  # type: ignore[arg-type]
    )
    app.dependency_overrides[get_identity_verifier] = lambda: unconfigured

    response = await async_client.post("/api/v1/auth/apple", json={"idToken": "identity-token"})

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "code": "CONFIGURATION_ERROR",
        "message": "Internal server error",
        "errors": {},
    }
