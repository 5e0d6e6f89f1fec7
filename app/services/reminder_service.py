"""Reminder records: one row per (event, user, notification type)."""

from datetime import UTC, date, datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import NotFoundException
from app.core.reminders import (
    CHECK_WINDOW_HOURS,
    OVERDUE_GRACE_HOURS,
    SETUP_WINDOW_DAYS,
    NotificationType,
    as_date,
    build_reminder_records,
    get_timezone,
    hours_until,
)
from app.database import dialect_insert
from app.models.events import events
from app.models.notifications import notifications

logger = structlog.get_logger(__name__)

EVENT_COLUMNS = (
    events.c.title,
    events.c.start_date,
    events.c.time,
)


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(UTC)


def _local_today(now: datetime) -> date:
    return now.astimezone(get_timezone(settings.reminder_timezone)).date()


class ReminderService:
    """Service for scheduling reminder records and marking them sent."""

    @staticmethod
    async def events_between(db: AsyncSession, start: date, end: date) -> list[dict[str, Any]]:
        """Events whose start date falls within ``[start, end]``."""
        result = await db.execute(
            select(events)
            .where(events.c.start_date >= start, events.c.start_date <= end)
            .order_by(events.c.start_date, events.c.time)
        )
        return [dict(row) for row in result.mappings().all()]

    @staticmethod
    async def schedule_for_user(
        db: AsyncSession,
        user_id: UUID,
        days: int = SETUP_WINDOW_DAYS,
        now: datetime | None = None,
    ) -> int:
        """
        Create the missing reminder records for a user's upcoming events.

        Rows conflicting with an existing (event, user, type) are ignored by
        the database, so concurrent runs cannot duplicate records.

        Args:
            db: Database session
            user_id: Recipient
            days: How many days ahead to look
            now: Current time, defaults to now

        Returns:
            Number of records that were missing when the run started
        """
        today = _local_today(_now(now))
        upcoming = await ReminderService.events_between(db, today, today + timedelta(days=days))
        if not upcoming:
            return 0

        result = await db.execute(
            select(notifications.c.event_id, notifications.c.notification_type).where(
                notifications.c.user_id == user_id,
                notifications.c.event_id.in_([e["id"] for e in upcoming]),
            )
        )
        existing = {(str(r.event_id), r.notification_type) for r in result.all()}

        records = build_reminder_records(upcoming, user_id, existing, today)
        if records:
            stmt = dialect_insert(db, notifications).values(records)
            stmt = stmt.on_conflict_do_nothing(
                index_elements=[
                    notifications.c.event_id,
                    notifications.c.user_id,
                    notifications.c.notification_type,
                ]
            )
            await db.execute(stmt)
            await db.commit()

        logger.info(
            "reminders_scheduled",
            user_id=str(user_id),
            events=len(upcoming),
            records=len(records),
        )
        return len(records)

    @staticmethod
    async def list_upcoming_events(
        db: AsyncSession,
        hours: int = CHECK_WINDOW_HOURS,
        now: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Events starting from today up to ``hours`` ahead, by date."""
        current = _now(now)
        tz = get_timezone(settings.reminder_timezone)
        start = (current - timedelta(hours=OVERDUE_GRACE_HOURS)).astimezone(tz).date()
        end = (current + timedelta(hours=hours)).astimezone(tz).date()
        return await ReminderService.events_between(db, start, end)

    @staticmethod
    async def sent_pairs(
        db: AsyncSession,
        user_id: UUID,
        event_ids: list[UUID] | None = None,
    ) -> list[dict[str, Any]]:
        """(event_id, notification_type) pairs already delivered to a user."""
        query = select(notifications.c.event_id, notifications.c.notification_type).where(
            notifications.c.user_id == user_id,
            notifications.c.sent.is_(True),
        )
        if event_ids is not None:
            query = query.where(notifications.c.event_id.in_(event_ids))
        result = await db.execute(query)
        return [dict(row) for row in result.mappings().all()]

    @staticmethod
    async def mark_sent(
        db: AsyncSession,
        user_id: UUID,
        event_id: UUID,
        notification_type: NotificationType,
    ) -> dict[str, Any]:
        """
        Record that a reminder was shown, creating the record when missing.

        Raises:
            NotFoundException: If the event does not exist
        """
        start = await db.scalar(select(events.c.start_date).where(events.c.id == event_id))
        if start is None:
            raise NotFoundException("Event not found")

        notification_type = NotificationType(notification_type)
        notify_date = as_date(start)
        if notification_type == NotificationType.DAY_BEFORE:
            notify_date -= timedelta(days=1)

        sent_at = datetime.now(UTC)
        stmt = dialect_insert(db, notifications).values(
            event_id=event_id,
            user_id=user_id,
            notify_date=notify_date,
            notification_type=notification_type.value,
            sent=True,
            sent_at=sent_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[
                notifications.c.event_id,
                notifications.c.user_id,
                notifications.c.notification_type,
            ],
            set_={"sent": True, "sent_at": sent_at},
        ).returning(notifications)

        result = await db.execute(stmt)
        await db.commit()
        logger.info(
            "reminder_marked_sent",
            user_id=str(user_id),
            event_id=str(event_id),
            notification_type=notification_type.value,
        )
        return dict(result.mappings().one())

    @staticmethod
    async def mark_sent_by_id(db: AsyncSession, user_id: UUID, record_id: UUID) -> dict[str, Any]:
        """
        Mark one of the user's reminder records as sent.

        Raises:
            NotFoundException: If the record does not exist or belongs to someone else
        """
        result = await db.execute(
            update(notifications)
            .where(notifications.c.id == record_id, notifications.c.user_id == user_id)
            .values(sent=True, sent_at=datetime.now(UTC))
            .returning(notifications)
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Notification not found")
        await db.commit()
        return dict(row)

    @staticmethod
    async def _records_with_events(db: AsyncSession, *criteria: Any) -> list[dict[str, Any]]:
        query = (
            select(notifications, *EVENT_COLUMNS)
            .join(events, events.c.id == notifications.c.event_id)
            .where(*criteria)
            .order_by(notifications.c.notify_date, events.c.start_date, events.c.time)
        )
        result = await db.execute(query)
        return [dict(row) for row in result.mappings().all()]

    @staticmethod
    async def due_for_user(
        db: AsyncSession,
        user_id: UUID,
        now: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """
        Unsent reminders dated today or tomorrow whose event starts within 24 hours.

        Slightly overdue events are still returned.
        """
        current = _now(now)
        today = _local_today(current)
        tz = get_timezone(settings.reminder_timezone)

        rows = await ReminderService._records_with_events(
            db,
            notifications.c.user_id == user_id,
            notifications.c.sent.is_(False),
            notifications.c.notify_date >= today,
            notifications.c.notify_date <= today + timedelta(days=1),
        )

        due = []
        for row in rows:
            left = hours_until(row, current, tz)
            if -OVERDUE_GRACE_HOURS <= left <= 24:
                row["hours_until"] = round(left, 2)
                due.append(row)
        return due

    @staticmethod
    async def upcoming_for_user(
        db: AsyncSession,
        user_id: UUID,
        days: int = 7,
        now: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Reminder records for the next ``days`` days, sent or not."""
        today = _local_today(_now(now))
        return await ReminderService._records_with_events(
            db,
            notifications.c.user_id == user_id,
            notifications.c.notify_date >= today,
            notifications.c.notify_date <= today + timedelta(days=days),
        )
