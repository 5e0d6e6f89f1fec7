"""Tests for push token, reminder record and preference endpoints."""

from datetime import UTC, date, datetime, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import func, insert, select

from app.models.events import events
from app.models.notifications import notifications
from app.models.push_tokens import fcm_tokens, push_subscriptions


async def add_event(db, title: str, start: date, time=None):
    result = await db.execute(
        insert(events)
        .values(title=title, start_date=start, end_date=start, time=time)
        .returning(events.c.id)
    )
    await db.commit()
    return result.scalar_one()


def utc_today() -> date:
    return datetime.now(UTC).date()


@pytest.mark.asyncio
async def test_register_fcm_token(
    client: AsyncClient,
    auth_headers: dict,
    test_user: dict,
    db_session,
) -> None:
    """Test registering FCM token."""
    response = await client.post(
        "/api/v1/notifications/tokens",
        json={"token": "test_fcm_token_123456", "device_info": "Firefox - 2026-03-10T12:00:00"},
        headers=auth_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["token"] == "test_fcm_token_123456"
    assert data["device_info"] == "Firefox - 2026-03-10T12:00:00"
    assert data["user_id"] == str(test_user["id"])

    result = await db_session.execute(
        select(fcm_tokens).where(fcm_tokens.c.token == "test_fcm_token_123456")
    )
    assert result.fetchone() is not None


@pytest.mark.asyncio
async def test_register_unchanged_token_keeps_one_row(
    client: AsyncClient,
    auth_headers: dict,
    db_session,
) -> None:
    """Re-registering the same token never adds a row."""
    first = await client.post(
        "/api/v1/notifications/tokens",
        json={"token": "same_token"},
        headers=auth_headers,
    )
    second = await client.post(
        "/api/v1/notifications/tokens",
        json={"token": "same_token", "device_info": "refreshed"},
        headers=auth_headers,
    )

    assert first.status_code == 201
    assert second.status_code == 201
    assert first.json()["id"] == second.json()["id"]
    assert second.json()["device_info"] == "refreshed"

    count = await db_session.scalar(select(func.count()).select_from(fcm_tokens))
    assert count == 1


@pytest.mark.asyncio
async def test_new_token_replaces_previous_one(
    client: AsyncClient,
    auth_headers: dict,
    test_user: dict,
    db_session,
) -> None:
    await client.post("/api/v1/notifications/tokens", json={"token": "old"}, headers=auth_headers)
    response = await client.post(
        "/api/v1/notifications/tokens",
        json={"token": "new"},
        headers=auth_headers,
    )

    assert response.status_code == 201
    result = await db_session.execute(
        select(fcm_tokens.c.token).where(fcm_tokens.c.user_id == test_user["id"])
    )
    assert [row.token for row in result] == ["new"]


@pytest.mark.asyncio
async def test_register_token_requires_token(client: AsyncClient, auth_headers: dict) -> None:
    response = await client.post(
        "/api/v1/notifications/tokens",
        json={"token": ""},
        headers=auth_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_remove_and_list_tokens(
    client: AsyncClient,
    auth_headers: dict,
    db_session,
    test_user: dict,
) -> None:
    # Extra rows can exist from older clients
    await db_session.execute(
        insert(fcm_tokens),
        [
            {"user_id": test_user["id"], "token": "device_a"},
            {"user_id": test_user["id"], "token": "device_b"},
        ],
    )
    await db_session.commit()

    listed = await client.get("/api/v1/notifications/tokens", headers=auth_headers)
    assert listed.status_code == 200
    assert {t["token"] for t in listed.json()} == {"device_a", "device_b"}

    response = await client.delete("/api/v1/notifications/tokens", headers=auth_headers)
    assert response.status_code == 200
    assert response.json() == {"removed": 2}

    listed = await client.get("/api/v1/notifications/tokens", headers=auth_headers)
    assert listed.json() == []


@pytest.mark.asyncio
async def test_push_subscription_upsert_and_delete(
    client: AsyncClient,
    auth_headers: dict,
    db_session,
) -> None:
    payload = {
        "endpoint": "https://push.example.com/sub/1",
        "keys": {"p256dh": "key-1", "auth": "auth-1"},
        "user_agent": "Firefox",
    }
    first = await client.post("/api/v1/push/subscribe", json=payload, headers=auth_headers)
    payload["keys"] = {"p256dh": "key-2", "auth": "auth-2"}
    second = await client.post("/api/v1/push/subscribe", json=payload, headers=auth_headers)

    assert first.status_code == 201
    assert second.status_code == 201
    assert first.json()["id"] == second.json()["id"]

    stored = (await db_session.execute(select(push_subscriptions))).mappings().all()
    assert len(stored) == 1
    assert stored[0]["p256dh"] == "key-2"

    response = await client.request(
        "DELETE",
        "/api/v1/push/subscribe",
        json={"endpoint": payload["endpoint"]},
        headers=auth_headers,
    )
    assert response.status_code == 204
    count = await db_session.scalar(select(func.count()).select_from(push_subscriptions))
    assert count == 0


@pytest.mark.asyncio
async def test_schedule_reminders_is_idempotent(
    client: AsyncClient,
    auth_headers: dict,
    db_session,
) -> None:
    today = utc_today()
    await add_event(db_session, "Later", today + timedelta(days=3))
    await add_event(db_session, "Today", today)
    await add_event(db_session, "Far away", today + timedelta(days=60))

    first = await client.post(
        "/api/v1/notifications/reminders/schedule",
        json={"days": 30},
        headers=auth_headers,
    )
    second = await client.post("/api/v1/notifications/reminders/schedule", headers=auth_headers)

    assert first.status_code == 200
    # "Later" gets both reminders, "Today" only the event-day one
    assert first.json() == {"scheduled": 3}
    assert second.json() == {"scheduled": 0}

    count = await db_session.scalar(select(func.count()).select_from(notifications))
    assert count == 3


@pytest.mark.asyncio
async def test_mark_sent_and_list_sent_pairs(
    client: AsyncClient,
    auth_headers: dict,
    db_session,
) -> None:
    start = utc_today() + timedelta(days=1)
    event_id = await add_event(db_session, "Retro", start)

    response = await client.post(
        "/api/v1/notifications/reminders/mark-sent",
        json={"event_id": str(event_id), "notification_type": "day_before"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    record = response.json()
    assert record["sent"] is True
    assert record["sent_at"] is not None
    assert record["notify_date"] == (start - timedelta(days=1)).isoformat()

    sent = await client.get(
        "/api/v1/notifications/reminders/sent",
        params={"event_ids": [str(event_id)]},
        headers=auth_headers,
    )
    assert sent.status_code == 200
    assert sent.json() == [{"event_id": str(event_id), "notification_type": "day_before"}]


@pytest.mark.asyncio
async def test_mark_sent_twice_keeps_one_record(
    client: AsyncClient,
    auth_headers: dict,
    db_session,
) -> None:
    event_id = await add_event(db_session, "Demo", utc_today())
    body = {"event_id": str(event_id), "notification_type": "event_day"}

    first = await client.post(
        "/api/v1/notifications/reminders/mark-sent", json=body, headers=auth_headers
    )
    second = await client.post(
        "/api/v1/notifications/reminders/mark-sent", json=body, headers=auth_headers
    )

    assert first.json()["id"] == second.json()["id"]
    count = await db_session.scalar(select(func.count()).select_from(notifications))
    assert count == 1


@pytest.mark.asyncio
async def test_mark_sent_unknown_event(client: AsyncClient, auth_headers: dict) -> None:
    response = await client.post(
        "/api/v1/notifications/reminders/mark-sent",
        json={
            "event_id": "00000000-0000-0000-0000-000000000000",
            "notification_type": "event_day",
        },
        headers=auth_headers,
    )

    assert response.status_code == 404
    assert response.json()["error"] == "NotFoundException"


@pytest.mark.asyncio
async def test_mark_sent_rejects_unknown_type(
    client: AsyncClient,
    auth_headers: dict,
    db_session,
) -> None:
    event_id = await add_event(db_session, "Demo", utc_today())
    response = await client.post(
        "/api/v1/notifications/reminders/mark-sent",
        json={"event_id": str(event_id), "notification_type": "week_before"},
        headers=auth_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_mark_record_sent_by_id(
    client: AsyncClient,
    auth_headers: dict,
    db_session,
    make_user,
    make_headers,
) -> None:
    await add_event(db_session, "Planning", utc_today() + timedelta(days=2))
    await client.post("/api/v1/notifications/reminders/schedule", headers=auth_headers)

    upcoming = await client.get("/api/v1/notifications/reminders", headers=auth_headers)
    assert upcoming.status_code == 200
    records = upcoming.json()
    assert {r["notification_type"] for r in records} == {"day_before", "event_day"}
    assert all(r["title"] == "Planning" for r in records)

    record_id = records[0]["id"]

    stranger = await make_user()
    response = await client.post(
        f"/api/v1/notifications/reminders/{record_id}/mark-sent",
        headers=make_headers(stranger),
    )
    assert response.status_code == 404

    response = await client.post(
        f"/api/v1/notifications/reminders/{record_id}/mark-sent",
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["sent"] is True


@pytest.mark.asyncio
async def test_upcoming_events_window(
    client: AsyncClient,
    auth_headers: dict,
    db_session,
) -> None:
    today = utc_today()
    await add_event(db_session, "Tomorrow", today + timedelta(days=1))
    await add_event(db_session, "Next week", today + timedelta(days=7))

    response = await client.get(
        "/api/v1/notifications/reminders/upcoming-events",
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert [e["title"] for e in response.json()] == ["Tomorrow"]


@pytest.mark.asyncio
async def test_preferences_default_then_update(
    client: AsyncClient,
    auth_headers: dict,
) -> None:
    response = await client.get("/api/v1/notifications/preferences", headers=auth_headers)

    assert response.status_code == 200
    defaults = response.json()
    assert defaults["daily_reminders"] is True
    assert defaults["reminder_time"] == "06:00:00"
    assert defaults["timezone"] == "UTC"

    response = await client.put(
        "/api/v1/notifications/preferences",
        json={"reminder_time": "07:30:00", "timezone": "Europe/Sofia"},
        headers=auth_headers,
    )
    assert response.status_code == 200

    saved = (await client.get("/api/v1/notifications/preferences", headers=auth_headers)).json()
    assert saved["reminder_time"] == "07:30:00"
    assert saved["timezone"] == "Europe/Sofia"
    assert saved["daily_reminders"] is True


@pytest.mark.asyncio
async def test_preferences_reject_unknown_timezone(
    client: AsyncClient,
    auth_headers: dict,
) -> None:
    response = await client.put(
        "/api/v1/notifications/preferences",
        json={"timezone": "Nowhere/Special"},
        headers=auth_headers,
    )
    assert response.status_code == 422
