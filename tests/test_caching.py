"""Tests for Redis caching implementation."""

import json
from unittest.mock import MagicMock

import pytest
from httpx import AsyncClient

from app.core.redis_client import CacheManager


def test_cache_manager_get_json():
    """Test CacheManager get_json method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    # Test cache miss
    mock_redis.get.return_value = None
    result = cache_manager.get_json("test_key")
    assert result is None
    mock_redis.get.assert_called_once_with("test_key")

    # Test cache hit
    mock_redis.reset_mock()
    mock_redis.get.return_value = '{"name": "Standup", "rows": 2}'
    result = cache_manager.get_json("test_key")
    assert result == {"name": "Standup", "rows": 2}
    mock_redis.get.assert_called_once_with("test_key")


def test_cache_manager_set_json():
    """Test CacheManager set_json method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    test_data = {"name": "Standup", "rows": 2}

    # Test without TTL
    result = cache_manager.set_json("test_key", test_data)
    assert result is True
    mock_redis.set.assert_called_once()

    # Test with TTL
    mock_redis.reset_mock()
    result = cache_manager.set_json("test_key", test_data, ttl=300)
    assert result is True
    mock_redis.setex.assert_called_once_with("test_key", 300, json.dumps(test_data))


def test_cache_manager_delete_pattern():
    """Test CacheManager delete_pattern method."""
    mock_redis = MagicMock()
    cache_manager = CacheManager(redis_client=mock_redis)

    mock_redis.keys.return_value = [
        "events:month:2026-03",
        "events:month:2026-04",
    ]
    mock_redis.delete.return_value = 2

    result = cache_manager.delete_pattern("events:month:*")

    mock_redis.keys.assert_called_once_with("events:month:*")
    mock_redis.delete.assert_called_once_with("events:month:2026-03", "events:month:2026-04")
    assert result == 2


def test_cache_manager_fails_open():
    """Redis errors read as misses and failed writes."""
    mock_redis = MagicMock()
    mock_redis.get.side_effect = ConnectionError("redis down")
    mock_redis.set.side_effect = ConnectionError("redis down")
    mock_redis.exists.side_effect = ConnectionError("redis down")
    mock_redis.keys.side_effect = ConnectionError("redis down")
    cache_manager = CacheManager(redis_client=mock_redis)

    assert cache_manager.get_json("key") is None
    assert cache_manager.set_json("key", {"a": 1}) is False
    assert cache_manager.exists("key") is False
    assert cache_manager.delete_pattern("events:*") == 0


@pytest.mark.asyncio
async def test_role_caching(
    client: AsyncClient,
    admin_headers: dict,
    admin_user: dict,
    fake_redis,
):
    """Test role lookups are cached."""
    response1 = await client.get("/api/v1/users/me", headers=admin_headers)
    assert response1.status_code == 200
    assert response1.json()["role"] == "Admin"
    assert fake_redis.get(f"user:{admin_user['id']}:role") == '"Admin"'
    assert fake_redis.ttls[f"user:{admin_user['id']}:role"] == 600

    response2 = await client.get("/api/v1/users/me", headers=admin_headers)
    assert response2.json() == response1.json()


@pytest.mark.asyncio
async def test_role_cache_invalidation(
    client: AsyncClient,
    auth_headers: dict,
    test_user: dict,
    super_admin_headers: dict,
    fake_redis,
):
    """Test the role cache is dropped when a role changes."""
    response1 = await client.get("/api/v1/users/me", headers=auth_headers)
    assert response1.json()["role"] == "Member"

    response2 = await client.put(
        f"/api/v1/users/{test_user['id']}/role",
        json={"role": "Admin"},
        headers=super_admin_headers,
    )
    assert response2.status_code == 200
    assert response2.json()["role"] == "Admin"
    assert fake_redis.get(f"user:{test_user['id']}:role") is None

    response3 = await client.get("/api/v1/users/me", headers=auth_headers)
    assert response3.json()["role"] == "Admin"


@pytest.mark.asyncio
async def test_month_calendar_caching(
    client: AsyncClient,
    admin_headers: dict,
    fake_redis,
):
    """Test month listings are cached and invalidated on writes."""
    await client.post(
        "/api/v1/events",
        json={"title": "Planning", "start_date": "2026-03-03", "end_date": "2026-03-04"},
        headers=admin_headers,
    )

    response1 = await client.get(
        "/api/v1/events/calendar",
        params={"year": 2026, "month": 3},
        headers=admin_headers,
    )
    assert response1.status_code == 200
    assert "events:month:2026-03" in fake_redis.store
    placements = response1.json()["weeks"][0]["placements"]
    assert [p["title"] for p in placements] == ["Planning"]

    # Cached response matches the fresh one
    response2 = await client.get(
        "/api/v1/events/calendar",
        params={"year": 2026, "month": 3},
        headers=admin_headers,
    )
    assert response2.json() == response1.json()

    # Creating an event drops every cached month
    await client.post(
        "/api/v1/events",
        json={"title": "Review", "start_date": "2026-03-04"},
        headers=admin_headers,
    )
    assert "events:month:2026-03" not in fake_redis.store

    response3 = await client.get(
        "/api/v1/events/calendar",
        params={"year": 2026, "month": 3},
        headers=admin_headers,
    )
    week = response3.json()["weeks"][0]
    assert {p["title"] for p in week["placements"]} == {"Planning", "Review"}
    assert week["row_count"] == 2


def test_blacklisted_tokens(fake_redis):
    """Revoked refresh tokens are stored with a TTL."""
    cache_manager = CacheManager(redis_client=fake_redis)

    assert cache_manager.is_blacklisted("refresh-token") is False
    assert cache_manager.blacklist_token("refresh-token", ttl=3600) is True

    assert cache_manager.is_blacklisted("refresh-token") is True
    assert fake_redis.ttls["blacklist:refresh-token"] == 3600
