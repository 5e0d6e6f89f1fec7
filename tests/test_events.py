"""Tests for event endpoints and role permissions."""

from datetime import date, timedelta
from uuid import UUID

import pytest
from httpx import AsyncClient
from sqlalchemy import func, insert, select

from app.models.notifications import notifications


@pytest.fixture
def sample_event_data() -> dict:
    """Sample event data for testing."""
    start = date.today() + timedelta(days=3)
    return {
        "title": "Team Offsite",
        "description": "Planning for next quarter",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(days=1)).isoformat(),
        "time": "09:30:00",
    }


@pytest.mark.asyncio
async def test_admin_creates_event(
    client: AsyncClient,
    admin_headers: dict,
    admin_user: dict,
    sample_event_data: dict,
) -> None:
    response = await client.post("/api/v1/events", json=sample_event_data, headers=admin_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "Team Offsite"
    assert data["start_date"] == sample_event_data["start_date"]
    assert data["end_date"] == sample_event_data["end_date"]
    assert data["time"] == "09:30:00"
    assert data["created_by"] == str(admin_user["id"])


@pytest.mark.asyncio
async def test_end_date_defaults_to_start_date(client: AsyncClient, admin_headers: dict) -> None:
    response = await client.post(
        "/api/v1/events",
        json={"title": "Standup", "start_date": "2026-03-10"},
        headers=admin_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["end_date"] == "2026-03-10"
    assert data["time"] is None


@pytest.mark.asyncio
async def test_member_cannot_create_event(
    client: AsyncClient,
    auth_headers: dict,
    sample_event_data: dict,
) -> None:
    response = await client.post("/api/v1/events", json=sample_event_data, headers=auth_headers)

    assert response.status_code == 403
    body = response.json()
    assert body["error"] == "ForbiddenException"
    assert body["path"] == "/api/v1/events"


@pytest.mark.asyncio
async def test_inverted_date_range_rejected(client: AsyncClient, admin_headers: dict) -> None:
    response = await client.post(
        "/api/v1/events",
        json={"title": "Backwards", "start_date": "2026-03-10", "end_date": "2026-03-09"},
        headers=admin_headers,
    )

    assert response.status_code == 422
    assert response.json()["error"] == "ValidationError"


@pytest.mark.asyncio
async def test_events_require_authentication(client: AsyncClient) -> None:
    response = await client.get("/api/v1/events")
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_list_events_filters_by_range(client: AsyncClient, admin_headers: dict) -> None:
    for title, start in (("March", "2026-03-05"), ("April", "2026-04-05"), ("May", "2026-05-05")):
        response = await client.post(
            "/api/v1/events",
            json={"title": title, "start_date": start},
            headers=admin_headers,
        )
        assert response.status_code == 201

    response = await client.get(
        "/api/v1/events",
        params={"from_date": "2026-04-01", "to_date": "2026-04-30"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert [e["title"] for e in response.json()] == ["April"]

    response = await client.get("/api/v1/events", headers=admin_headers)
    assert [e["title"] for e in response.json()] == ["March", "April", "May"]


@pytest.mark.asyncio
async def test_admin_edits_only_own_events(
    client: AsyncClient,
    admin_headers: dict,
    make_user,
    make_headers,
    sample_event_data: dict,
) -> None:
    created = await client.post("/api/v1/events", json=sample_event_data, headers=admin_headers)
    event_id = created.json()["id"]

    other_admin = await make_user(role="Admin")
    response = await client.patch(
        f"/api/v1/events/{event_id}",
        json={"title": "Hijacked"},
        headers=make_headers(other_admin),
    )
    assert response.status_code == 403

    response = await client.patch(
        f"/api/v1/events/{event_id}",
        json={"title": "Team Offsite (updated)"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["title"] == "Team Offsite (updated)"


@pytest.mark.asyncio
async def test_super_admin_edits_any_event(
    client: AsyncClient,
    admin_headers: dict,
    super_admin_headers: dict,
    sample_event_data: dict,
) -> None:
    created = await client.post("/api/v1/events", json=sample_event_data, headers=admin_headers)
    event_id = created.json()["id"]

    response = await client.patch(
        f"/api/v1/events/{event_id}",
        json={"color": "#123456", "time": None},
        headers=super_admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["color"] == "#123456"
    assert data["time"] is None
    assert data["title"] == sample_event_data["title"]


@pytest.mark.asyncio
async def test_update_rejects_end_before_existing_start(
    client: AsyncClient,
    admin_headers: dict,
) -> None:
    created = await client.post(
        "/api/v1/events",
        json={"title": "Review", "start_date": "2026-03-10"},
        headers=admin_headers,
    )
    event_id = created.json()["id"]

    response = await client.patch(
        f"/api/v1/events/{event_id}",
        json={"end_date": "2026-03-01"},
        headers=admin_headers,
    )

    assert response.status_code == 422
    assert response.json()["error"] == "ValidationException"


@pytest.mark.asyncio
async def test_update_missing_event(client: AsyncClient, super_admin_headers: dict) -> None:
    response = await client.patch(
        "/api/v1/events/00000000-0000-0000-0000-000000000000",
        json={"title": "Nothing"},
        headers=super_admin_headers,
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_only_super_admin_deletes(
    client: AsyncClient,
    admin_headers: dict,
    super_admin_headers: dict,
    sample_event_data: dict,
) -> None:
    created = await client.post("/api/v1/events", json=sample_event_data, headers=admin_headers)
    event_id = created.json()["id"]

    response = await client.delete(f"/api/v1/events/{event_id}", headers=admin_headers)
    assert response.status_code == 403

    response = await client.delete(f"/api/v1/events/{event_id}", headers=super_admin_headers)
    assert response.status_code == 204

    response = await client.get(f"/api/v1/events/{event_id}", headers=super_admin_headers)
    assert response.status_code == 404
    assert response.json()["message"] == "Event not found"


@pytest.mark.asyncio
async def test_delete_event_removes_its_reminders(
    client: AsyncClient,
    db_session,
    admin_headers: dict,
    super_admin_headers: dict,
    test_user: dict,
    sample_event_data: dict,
) -> None:
    created = await client.post("/api/v1/events", json=sample_event_data, headers=admin_headers)
    event = created.json()

    await db_session.execute(
        insert(notifications).values(
            event_id=UUID(event["id"]),
            user_id=test_user["id"],
            notify_date=date.fromisoformat(event["start_date"]),
            notification_type="event_day",
        )
    )
    await db_session.commit()

    response = await client.delete(f"/api/v1/events/{event['id']}", headers=super_admin_headers)
    assert response.status_code == 204

    remaining = await db_session.scalar(select(func.count()).select_from(notifications))
    assert remaining == 0


@pytest.mark.asyncio
async def test_event_stats(client: AsyncClient, admin_headers: dict) -> None:
    today = date.today()
    for offset in (1, 3, 60):
        await client.post(
            "/api/v1/events",
            json={
                "title": f"In {offset} days",
                "start_date": (today + timedelta(days=offset)).isoformat(),
            },
            headers=admin_headers,
        )

    response = await client.get("/api/v1/events/stats", headers=admin_headers)

    assert response.status_code == 200
    stats = response.json()
    assert stats["total_events"] == 3
    assert stats["upcoming_events"] == 2
