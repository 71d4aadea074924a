import time
from uuid import UUID, uuid4

import pytest
from httpx import AsyncClient

from app.auth.security import create_access_token, create_refresh_token, decode_token
from app.auth.services import is_token_revoked, revoke_token
from app.core.cache import CacheKeys
from app.core.rate_limiter import RateLimiter

from conftest import TEST_PASSWORD, auth_headers


@pytest.mark.asyncio
async def test_register_schooladmin(client: AsyncClient, superadmin_headers, school) -> None:
    payload = {
        "username": "chalmers",
        "password": "Sup3r@intendent",
        "role": "schooladmin",
        "schoolId": str(school.id),
    }

    response = await client.post("/api/v1/auth/register", json=payload, headers=superadmin_headers)
    assert response.status_code == 201
    data = response.json()
    UUID(data["userId"])
    assert data["username"] == "chalmers"
    assert data["role"] == "schooladmin"
    assert data["schoolId"] == str(school.id)


@pytest.mark.asyncio
async def test_register_requires_superadmin(client: AsyncClient, schooladmin_headers, school) -> None:
    payload = {"username": "someone", "password": "Str0ng@Pass", "role": "schooladmin", "schoolId": str(school.id)}

    response = await client.post("/api/v1/auth/register", json=payload, headers=schooladmin_headers)
    assert response.status_code == 403
    assert response.json()["error"] == {"code": 403, "message": "Forbidden"}

    response = await client.post("/api/v1/auth/register", json=payload)
    assert response.status_code == 401
    assert response.json()["error"]["message"] == "No token"


@pytest.mark.asyncio
async def test_register_validation(client: AsyncClient, superadmin_headers, school) -> None:
    weak = {"username": "weakling", "password": "password", "role": "superadmin"}
    response = await client.post("/api/v1/auth/register", json=weak, headers=superadmin_headers)
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["message"] == "Validation failed"
    assert any("password" in detail for detail in error["details"])

    missing_school = {"username": "orphan", "password": "Str0ng@Pass", "role": "schooladmin"}
    response = await client.post("/api/v1/auth/register", json=missing_school, headers=superadmin_headers)
    assert response.status_code == 400

    unknown_school = {**missing_school, "schoolId": str(uuid4())}
    response = await client.post("/api/v1/auth/register", json=unknown_school, headers=superadmin_headers)
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "School does not exist"


@pytest.mark.asyncio
async def test_register_duplicate_username(client: AsyncClient, superadmin, superadmin_headers) -> None:
    payload = {"username": superadmin.username, "password": "Str0ng@Pass", "role": "superadmin"}

    response = await client.post("/api/v1/auth/register", json=payload, headers=superadmin_headers)
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Username taken"


@pytest.mark.asyncio
async def test_login_success(client: AsyncClient, schooladmin) -> None:
    response = await client.post(
        "/api/v1/auth/login",
        json={"username": schooladmin.username, "password": TEST_PASSWORD},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["token"]
    assert data["refreshToken"]
    assert data["user"] == {
        "id": str(schooladmin.id),
        "role": "schooladmin",
        "schoolId": str(schooladmin.school_id),
    }

    # The issued token opens protected routes
    response = await client.get("/api/v1/classrooms", headers={"Authorization": f"Bearer {data['token']}"})
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_login_failures_are_indistinguishable(client: AsyncClient, schooladmin) -> None:
    wrong_password = await client.post(
        "/api/v1/auth/login",
        json={"username": schooladmin.username, "password": "Wr0ng@Pass"},
    )
    unknown_user = await client.post(
        "/api/v1/auth/login",
        json={"username": "nobody", "password": "Wr0ng@Pass"},
    )

    assert wrong_password.status_code == unknown_user.status_code == 401
    assert wrong_password.json() == unknown_user.json()
    assert wrong_password.json()["error"]["message"] == "Invalid credentials"
    assert "token" not in wrong_password.json()


@pytest.mark.asyncio
async def test_login_rate_limit(app, client: AsyncClient, schooladmin) -> None:
    app.state.login_limiter = RateLimiter(max_requests=5, time_window=900)
    payload = {"username": schooladmin.username, "password": "Wr0ng@Pass"}

    for _ in range(5):
        response = await client.post("/api/v1/auth/login", json=payload)
        assert response.status_code == 401

    response = await client.post("/api/v1/auth/login", json=payload)
    assert response.status_code == 429
    assert response.json()["error"]["code"] == 429


@pytest.mark.asyncio
async def test_refresh_issues_new_access_token(client: AsyncClient, schooladmin) -> None:
    login = await client.post(
        "/api/v1/auth/login",
        json={"username": schooladmin.username, "password": TEST_PASSWORD},
    )
    refresh_token = login.json()["refreshToken"]

    response = await client.post("/api/v1/auth/refresh", json={"refreshToken": refresh_token})
    assert response.status_code == 200
    token = response.json()["token"]

    response = await client.get("/api/v1/students", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_refresh_rejects_stale_and_wrong_tokens(client: AsyncClient, schooladmin) -> None:
    credentials = {"username": schooladmin.username, "password": TEST_PASSWORD}
    first = (await client.post("/api/v1/auth/login", json=credentials)).json()
    second = (await client.post("/api/v1/auth/login", json=credentials)).json()

    # Only the most recent refresh token is honoured
    response = await client.post("/api/v1/auth/refresh", json={"refreshToken": first["refreshToken"]})
    assert response.status_code == 401

    response = await client.post("/api/v1/auth/refresh", json={"refreshToken": second["token"]})
    assert response.status_code == 401

    never_issued = create_refresh_token(schooladmin.id)
    response = await client.post("/api/v1/auth/refresh", json={"refreshToken": never_issued})
    assert response.status_code == 401

    response = await client.post("/api/v1/auth/refresh", json={"refreshToken": second["refreshToken"]})
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_logout_revokes_token(client: AsyncClient, fake_redis, schooladmin) -> None:
    login = (
        await client.post(
            "/api/v1/auth/login",
            json={"username": schooladmin.username, "password": TEST_PASSWORD},
        )
    ).json()
    headers = {"Authorization": f"Bearer {login['token']}"}

    response = await client.post("/api/v1/auth/logout", headers=headers)
    assert response.status_code == 200
    assert response.json() == {"message": "Logged out"}

    response = await client.get("/api/v1/classrooms", headers=headers)
    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Token revoked"

    # Blacklist entry covers the rest of the token's life and not much more
    expires_in = fake_redis.expires_in(CacheKeys.blacklist_key(login["token"]))
    token_left = decode_token(login["token"])["exp"] - time.time()
    assert token_left < expires_in < token_left + 3

    # The stored refresh token is cleared as well
    response = await client.post("/api/v1/auth/refresh", json={"refreshToken": login["refreshToken"]})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_rejects_bad_tokens(client: AsyncClient, schooladmin) -> None:
    expired = create_access_token(schooladmin.id, schooladmin.role, schooladmin.school_id, expires_minutes=-1)
    response = await client.get("/api/v1/classrooms", headers={"Authorization": f"Bearer {expired}"})
    assert response.status_code == 401

    response = await client.get("/api/v1/classrooms", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401

    refresh = create_refresh_token(schooladmin.id)
    response = await client.get("/api/v1/classrooms", headers={"Authorization": f"Bearer {refresh}"})
    assert response.status_code == 401

    response = await client.get("/api/v1/classrooms", headers=auth_headers(schooladmin))
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_token_revoked_in_its_last_second_stays_revoked(cache, fake_redis) -> None:
    # Expires at the next whole second, so under a second of life remains
    token = create_access_token(uuid4(), "superadmin", None, expires_minutes=1 / 60)
    claims = decode_token(token)

    await revoke_token(cache, token)

    assert await is_token_revoked(cache, token)
    # jose accepts the token until the clock passes exp + 1s
    accepted_for = claims["exp"] + 1 - time.time()
    assert fake_redis.expires_in(CacheKeys.blacklist_key(token)) > accepted_for - 0.01


@pytest.mark.asyncio
async def test_login_rate_limit_ignores_spoofed_forwarded_for(app, client: AsyncClient, schooladmin) -> None:
    app.state.login_limiter = RateLimiter(max_requests=5, time_window=900)
    payload = {"username": schooladmin.username, "password": "Wr0ng@Pass"}

    for i in range(5):
        response = await client.post("/api/v1/auth/login", json=payload, headers={"X-Forwarded-For": f"198.51.100.{i}"})
        assert response.status_code == 401

    response = await client.post("/api/v1/auth/login", json=payload, headers={"X-Forwarded-For": "198.51.100.77"})
    assert response.status_code == 429
