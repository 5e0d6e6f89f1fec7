"""Tests for authentication, user roles, health and setup-check endpoints."""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from app.core.security import create_access_token, create_refresh_token, decode_access_token


def firebase_claims(**overrides) -> dict:
    claims = {
        "uid": "firebase-uid-new",
        "email": "new.person@example.com",
        "name": "New Person",
        "picture": None,
    }
    claims.update(overrides)
    return claims


@pytest.mark.asyncio
async def test_firebase_login_creates_member(client: AsyncClient) -> None:
    with patch(
        "app.services.auth_service.verify_firebase_token",
        AsyncMock(return_value=firebase_claims()),
    ):
        first = await client.post("/api/v1/auth/firebase/verify", json={"id_token": "id-token"})
        second = await client.post("/api/v1/auth/firebase/verify", json={"id_token": "id-token"})

    assert first.status_code == 200
    data = first.json()
    assert data["token_type"] == "bearer"
    assert data["user"]["email"] == "new.person@example.com"
    assert data["user"]["role"] == "Member"
    assert second.json()["user"]["id"] == data["user"]["id"]

    payload = decode_access_token(data["access_token"])
    assert payload is not None
    assert payload["sub"] == data["user"]["id"]


@pytest.mark.asyncio
async def test_firebase_login_returns_stored_role(client: AsyncClient, admin_user: dict) -> None:
    claims = firebase_claims(uid=admin_user["firebase_uid"], email=admin_user["email"])
    with patch("app.services.auth_service.verify_firebase_token", AsyncMock(return_value=claims)):
        response = await client.post("/api/v1/auth/firebase/verify", json={"id_token": "id-token"})

    assert response.status_code == 200
    assert response.json()["user"]["role"] == "Admin"


@pytest.mark.asyncio
async def test_firebase_login_rejects_invalid_token(client: AsyncClient) -> None:
    with patch(
        "app.services.auth_service.verify_firebase_token",
        AsyncMock(side_effect=ValueError("Invalid Firebase ID token: expired")),
    ):
        response = await client.post("/api/v1/auth/firebase/verify", json={"id_token": "stale"})

    assert response.status_code == 401
    assert response.json()["error"] == "UnauthorizedException"


@pytest.mark.asyncio
async def test_firebase_login_requires_email(client: AsyncClient) -> None:
    with patch(
        "app.services.auth_service.verify_firebase_token",
        AsyncMock(return_value=firebase_claims(email=None)),
    ):
        response = await client.post("/api/v1/auth/firebase/verify", json={"id_token": "id-token"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_deactivated_user_cannot_login(client: AsyncClient, make_user) -> None:
    user = await make_user(is_active=False)
    claims = firebase_claims(uid=user["firebase_uid"], email=user["email"])
    with patch("app.services.auth_service.verify_firebase_token", AsyncMock(return_value=claims)):
        response = await client.post("/api/v1/auth/firebase/verify", json={"id_token": "id-token"})

    assert response.status_code == 401
    assert response.json()["message"] == "User account is deactivated"


@pytest.mark.asyncio
async def test_refresh_and_logout(client: AsyncClient, test_user: dict) -> None:
    refresh_token = create_refresh_token(data={"sub": str(test_user["id"])})

    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token})
    assert response.status_code == 200
    assert decode_access_token(response.json()["access_token"])["sub"] == str(test_user["id"])

    response = await client.post("/api/v1/auth/logout", json={"refresh_token": refresh_token})
    assert response.status_code == 204

    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token})
    assert response.status_code == 401
    assert response.json()["message"] == "Token has been revoked"


@pytest.mark.asyncio
async def test_access_token_is_not_a_refresh_token(client: AsyncClient, test_user: dict) -> None:
    access_token = create_access_token(data={"sub": str(test_user["id"])})

    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": access_token})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_refresh_token_cannot_call_api(client: AsyncClient, test_user: dict) -> None:
    refresh_token = create_refresh_token(data={"sub": str(test_user["id"])})

    response = await client.get(
        "/api/v1/users/me",
        headers={"Authorization": f"Bearer {refresh_token}"},
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_get_me(client: AsyncClient, auth_headers: dict, test_user: dict) -> None:
    response = await client.get("/api/v1/users/me", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["id"] == str(test_user["id"])
    assert data["email"] == "member@example.com"
    assert data["role"] == "Member"


@pytest.mark.asyncio
async def test_deactivated_user_is_forbidden(client: AsyncClient, make_user, make_headers) -> None:
    user = await make_user(is_active=False)

    response = await client.get("/api/v1/users/me", headers=make_headers(user))

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_only_super_admin_assigns_roles(
    client: AsyncClient,
    test_user: dict,
    admin_headers: dict,
    super_admin_headers: dict,
) -> None:
    response = await client.put(
        f"/api/v1/users/{test_user['id']}/role",
        json={"role": "Super Admin"},
        headers=admin_headers,
    )
    assert response.status_code == 403

    response = await client.put(
        "/api/v1/users/00000000-0000-0000-0000-000000000000/role",
        json={"role": "Admin"},
        headers=super_admin_headers,
    )
    assert response.status_code == 404

    response = await client.put(
        f"/api/v1/users/{test_user['id']}/role",
        json={"role": "Owner"},
        headers=super_admin_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_health_and_ping(client: AsyncClient) -> None:
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"

    response = await client.get("/api/v1/ping")
    assert response.json() == {"message": "pong"}


@pytest.mark.asyncio
async def test_setup_check(
    client: AsyncClient,
    super_admin_headers: dict,
    firebase_app,
) -> None:
    response = await client.get("/api/v1/system/setup-check")
    assert response.status_code == 401

    with patch(
        "app.services.system_service.check_redis_connection",
        AsyncMock(return_value=False),
    ):
        response = await client.get("/api/v1/system/setup-check", headers=super_admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["firebase"] == {"ok": True, "detail": "project test-project"}
    assert data["database"]["ok"] is True
    assert data["redis"]["ok"] is False
    assert data["ready"] is True
    assert data["environment"]["database_url"] is True
