"""Tests for the hourly reminder cron and the daily digest."""

from datetime import UTC, datetime, time, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import insert, select

from app.config import settings
from app.models.events import events
from app.models.notifications import notification_preferences, notifications_log
from app.models.push_tokens import fcm_tokens
from app.services.broadcast_service import DIGEST_TITLE, BroadcastService

# 06:15 UTC, inside the default 06:00 reminder hour
MORNING = datetime(2026, 3, 10, 6, 15, tzinfo=UTC)


@pytest.fixture(autouse=True)
def reminder_defaults(monkeypatch):
    monkeypatch.setattr(settings, "reminder_timezone", "UTC")
    monkeypatch.setattr(settings, "default_reminder_time", "06:00:00")


async def add_event(db, title, start, at=None):
    await db.execute(insert(events).values(title=title, start_date=start, end_date=start, time=at))
    await db.commit()


async def add_token(db, user_id, token):
    await db.execute(insert(fcm_tokens).values(user_id=user_id, token=token))
    await db.commit()


async def set_preferences(db, user_id, **values):
    defaults = {"daily_reminders": True, "reminder_time": time(6, 0), "timezone": "UTC"}
    await db.execute(
        insert(notification_preferences).values(user_id=user_id, **{**defaults, **values})
    )
    await db.commit()


@pytest.mark.asyncio
async def test_reminder_sent_during_reminder_hour(db_session, test_user, fcm_send) -> None:
    await add_event(db_session, "Standup", MORNING.date(), time(10, 0))
    await add_token(db_session, test_user["id"], "token_cron")

    report = await BroadcastService.run_event_reminders(db_session, now=MORNING)

    assert report["events_found"] == 1
    assert report["users_processed"] == 1
    assert report["notifications_sent"] == 1
    assert report["results"][0]["status"] == "sent"
    assert report["results"][0]["local_hour"] == 6

    message = fcm_send.call_args.args[0]
    assert message.notification.title == "📅 Upcoming Event: Standup"
    assert message.notification.body == 'Event "Standup" is in 4 hours (Mar 10, 10:00 AM)'
    assert message.data["type"] == "event_reminder"
    assert message.data["hours_until"] == "4"


@pytest.mark.asyncio
async def test_one_message_per_event(db_session, test_user, fcm_send) -> None:
    await add_event(db_session, "Standup", MORNING.date(), time(10, 0))
    await add_event(db_session, "Lunch", MORNING.date(), time(12, 30))
    await add_token(db_session, test_user["id"], "token_cron")

    report = await BroadcastService.run_event_reminders(db_session, now=MORNING)

    assert fcm_send.call_count == 2
    assert report["results"][0]["notifications_sent"] == 2
    logged = (await db_session.execute(select(notifications_log.c.title))).all()
    assert len(logged) == 2


@pytest.mark.asyncio
async def test_outside_reminder_hour_is_skipped_unless_forced(
    db_session,
    test_user,
    fcm_send,
) -> None:
    noon = MORNING.replace(hour=12, minute=0)
    await add_event(db_session, "Retro", noon.date(), time(15, 0))
    await add_token(db_session, test_user["id"], "token_cron")

    report = await BroadcastService.run_event_reminders(db_session, now=noon)

    assert report["users_skipped"] == 1
    assert report["notifications_sent"] == 0
    assert report["results"][0]["reason"] == "not reminder hour"
    fcm_send.assert_not_called()

    report = await BroadcastService.run_event_reminders(db_session, now=noon, force=True)

    assert report["notifications_sent"] == 1
    fcm_send.assert_called_once()


@pytest.mark.asyncio
async def test_skipped_hour_does_not_need_provider(db_session, test_user, monkeypatch) -> None:
    monkeypatch.setattr("app.core.firebase._firebase_app", None)
    noon = MORNING.replace(hour=12, minute=0)
    await add_event(db_session, "Retro", noon.date(), time(15, 0))
    await add_token(db_session, test_user["id"], "token_cron")

    report = await BroadcastService.run_event_reminders(db_session, now=noon)

    assert report["success"] is True
    assert report["users_skipped"] == 1
    assert report["users_processed"] == 0


@pytest.mark.asyncio
async def test_reminder_hour_uses_user_timezone(db_session, test_user, fcm_send) -> None:
    # 08:15 in Sofia is 06:15 UTC in winter
    await set_preferences(
        db_session, test_user["id"], reminder_time=time(8, 0), timezone="Europe/Sofia"
    )
    await add_event(db_session, "Standup", MORNING.date(), time(10, 0))
    await add_token(db_session, test_user["id"], "token_cron")

    report = await BroadcastService.run_event_reminders(db_session, now=MORNING)

    assert report["results"][0]["status"] == "sent"
    assert report["results"][0]["local_hour"] == 8


@pytest.mark.asyncio
async def test_disabled_reminders_are_skipped_even_when_forced(
    db_session,
    test_user,
    fcm_send,
) -> None:
    await set_preferences(db_session, test_user["id"], daily_reminders=False)
    await add_event(db_session, "Standup", MORNING.date(), time(10, 0))
    await add_token(db_session, test_user["id"], "token_cron")

    report = await BroadcastService.run_event_reminders(db_session, now=MORNING, force=True)

    assert report["results"][0]["reason"] == "daily reminders disabled"
    fcm_send.assert_not_called()


@pytest.mark.asyncio
async def test_no_events_means_no_sends(db_session, test_user, fcm_send) -> None:
    await add_token(db_session, test_user["id"], "token_cron")

    report = await BroadcastService.run_event_reminders(db_session, now=MORNING)

    assert report["message"] == "No events in the next 24 hours"
    fcm_send.assert_not_called()


@pytest.mark.asyncio
async def test_daily_digest_counts_events(db_session, test_user, make_user, fcm_send) -> None:
    other = await make_user()
    await add_event(db_session, "Standup", MORNING.date(), time(10, 0))
    await add_event(db_session, "Offsite", MORNING.date() + timedelta(days=1))
    await add_token(db_session, test_user["id"], "token_a")
    await add_token(db_session, other["id"], "token_b")
    # Preferences do not apply to the digest
    await set_preferences(db_session, other["id"], daily_reminders=False)

    report = await BroadcastService.run_daily_digest(db_session, now=MORNING)

    assert report["total_users"] == 2
    assert report["users_with_events"] == 2
    assert report["notifications_sent"] == 2
    assert all(u["events_count"] == 2 for u in report["users"])
    message = fcm_send.call_args.args[0]
    assert message.notification.title == DIGEST_TITLE
    assert message.notification.body == "You have 2 events coming up in the next 24 hours"


@pytest.mark.asyncio
async def test_daily_digest_without_tokens(db_session, fcm_send) -> None:
    report = await BroadcastService.run_daily_digest(db_session, now=MORNING)

    assert report["total_users"] == 0
    assert report["errors"] == ["No users with FCM tokens found"]


@pytest.mark.asyncio
async def test_cron_secret_required_when_configured(
    client: AsyncClient,
    monkeypatch,
) -> None:
    monkeypatch.setattr(settings, "cron_secret", "cron-secret")

    response = await client.get("/api/v1/cron/notifications")
    assert response.status_code == 401

    response = await client.get(
        "/api/v1/cron/notifications",
        headers={"Authorization": "Bearer wrong"},
    )
    assert response.status_code == 401

    response = await client.get(
        "/api/v1/cron/notifications",
        headers={"Authorization": "Bearer cron-secret"},
    )
    assert response.status_code == 200
    assert response.json()["events_found"] == 0


@pytest.mark.asyncio
async def test_cron_open_without_secret(client: AsyncClient, monkeypatch) -> None:
    monkeypatch.setattr(settings, "cron_secret", None)

    response = await client.post("/api/v1/cron/notifications")

    assert response.status_code == 200
    assert response.json()["success"] is True


@pytest.mark.asyncio
async def test_forced_cron_over_http(
    client: AsyncClient,
    db_session,
    test_user,
    fcm_send,
    monkeypatch,
) -> None:
    monkeypatch.setattr(settings, "cron_secret", None)
    start = (datetime.now(UTC) + timedelta(hours=2)).replace(microsecond=0)
    await add_event(db_session, "Standup", start.date(), start.time())
    await add_token(db_session, test_user["id"], "token_http")

    response = await client.get("/api/v1/cron/notifications", params={"force": "true"})

    assert response.status_code == 200
    data = response.json()
    assert data["notifications_sent"] == 1
    assert data["results"][0]["user_id"] == str(test_user["id"])


@pytest.mark.asyncio
async def test_daily_digest_endpoint(client: AsyncClient, monkeypatch) -> None:
    monkeypatch.setattr(settings, "cron_secret", None)

    response = await client.post("/api/v1/cron/daily-digest")

    assert response.status_code == 200
    assert response.json()["total_users"] == 0
