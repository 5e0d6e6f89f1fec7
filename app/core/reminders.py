"""
Reminder policy shared by the API and the client scheduler.

An event produces at most two reminders per user: ``day_before`` and
``event_day``. Which one is due is decided from the number of hours left
until the event starts:

* ``-2 <= hours <= 4``: ``event_day`` (slightly overdue events still count)
* ``4 < hours <= 30``: ``day_before``, unless any reminder was already sent
* anything else: nothing is due yet

Events without a time of day are anchored at 09:00 in the reminder timezone.
"""

from collections.abc import Collection, Iterable
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

SETUP_WINDOW_DAYS = 30
CHECK_WINDOW_HOURS = 48
IMMEDIATE_THRESHOLD_HOURS = 4
OVERDUE_GRACE_HOURS = 2
DAY_BEFORE_THRESHOLD_HOURS = 30

CHECK_THROTTLE_SECONDS = 120
CHECK_INTERVAL_SECONDS = 120
SETUP_COOLDOWN_SECONDS = 5
TRIGGER_DEBOUNCE_SECONDS = 1
BACKUP_DELAY_SECONDS = 30

ALL_DAY_ANCHOR = time(9, 0)


class NotificationType(str, Enum):
    """Kind of reminder tied to an event."""

    DAY_BEFORE = "day_before"
    EVENT_DAY = "event_day"


def get_timezone(name: str | None) -> tzinfo:
    """
    Resolve an IANA timezone name.

    Raises:
        ValueError: If the name is not a known timezone
    """
    if not name or name.upper() == "UTC":
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name}") from e


def as_date(value: date | str) -> date:
    """Accept a date or an ISO date/datetime string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


def as_time(value: time | str | None) -> time | None:
    """Accept a time, an ``HH:MM[:SS]`` string or nothing."""
    if value is None or value == "":
        return None
    if isinstance(value, time):
        return value
    return time.fromisoformat(value)


def event_starts_at(event: dict[str, Any], tz: tzinfo = UTC) -> datetime:
    """Aware datetime at which an event starts for reminder purposes."""
    start = as_date(event["start_date"])
    start_time = as_time(event.get("time")) or ALL_DAY_ANCHOR
    return datetime.combine(start, start_time, tzinfo=tz)


def hours_until(event: dict[str, Any], now: datetime, tz: tzinfo = UTC) -> float:
    """Hours from ``now`` until the event starts (negative once started)."""
    return (event_starts_at(event, tz) - now).total_seconds() / 3600


def decide_notification_type(
    hours: float,
    sent_types: Collection[str],
) -> NotificationType | None:
    """
    Pick the reminder that is due for an event, if any.

    Args:
        hours: Hours until the event starts
        sent_types: Reminder types already sent to this user for this event

    Returns:
        The reminder type to show now, or None
    """
    sent = {str(getattr(t, "value", t)) for t in sent_types}

    if -OVERDUE_GRACE_HOURS <= hours <= IMMEDIATE_THRESHOLD_HOURS:
        if NotificationType.EVENT_DAY.value not in sent:
            return NotificationType.EVENT_DAY
        return None

    if IMMEDIATE_THRESHOLD_HOURS < hours <= DAY_BEFORE_THRESHOLD_HOURS and not sent:
        return NotificationType.DAY_BEFORE

    return None


def is_immediate(hours: float) -> bool:
    """Whether a reminder is close enough to the start to warrant a backup."""
    return hours <= IMMEDIATE_THRESHOLD_HOURS


def build_reminder_records(
    events: Iterable[dict[str, Any]],
    user_id: Any,
    existing: Collection[tuple[str, str]],
    today: date,
) -> list[dict[str, Any]]:
    """
    Build the reminder rows missing for a user.

    Args:
        events: Events to remind about
        user_id: Recipient
        existing: ``(event_id, notification_type)`` pairs already stored
        today: Current date; day-before reminders in the past are skipped

    Returns:
        Unsent reminder rows ready for insertion
    """
    records: list[dict[str, Any]] = []

    for event in events:
        start = as_date(event["start_date"])
        event_key = str(event["id"])

        day_before = start - timedelta(days=1)
        if day_before >= today and (event_key, NotificationType.DAY_BEFORE.value) not in existing:
            records.append(
                {
                    "event_id": event["id"],
                    "user_id": user_id,
                    "notify_date": day_before,
                    "notification_type": NotificationType.DAY_BEFORE.value,
                    "sent": False,
                }
            )

        if (event_key, NotificationType.EVENT_DAY.value) not in existing:
            records.append(
                {
                    "event_id": event["id"],
                    "user_id": user_id,
                    "notify_date": start,
                    "notification_type": NotificationType.EVENT_DAY.value,
                    "sent": False,
                }
            )

    return records


def reminder_message(
    event: dict[str, Any],
    notification_type: NotificationType | str,
) -> tuple[str, str]:
    """Title and body shown for a reminder."""
    title = event.get("title", "Event")

    if NotificationType(notification_type) == NotificationType.DAY_BEFORE:
        start = as_date(event["start_date"])
        return f"Reminder: {title}", f"Happening tomorrow ({start.strftime('%b %d, %Y')})"

    event_time = as_time(event.get("time"))
    suffix = f" at {event_time.strftime('%H:%M')}" if event_time else ""
    return f"Today: {title}", f"Happening today{suffix}"


def reminder_tag(event_id: Any, backup: bool = False) -> str:
    """Notification tag; backups use their own tag so they are not collapsed."""
    tag = f"event-{event_id}"
    return f"{tag}-backup" if backup else tag


def within_window(event: dict[str, Any], now: datetime, hours: float, tz: tzinfo = UTC) -> bool:
    """
    Whether an event starts between ``now`` and ``now + hours``.

    Events without a time count for their whole start day, so an all-day
    event later today is still upcoming after the 09:00 anchor has passed.
    """
    if as_time(event.get("time")) is None:
        local_now = now.astimezone(tz)
        start = as_date(event["start_date"])
        return local_now.date() <= start <= (local_now + timedelta(hours=hours)).date()

    left = hours_until(event, now, tz)
    return 0 <= left <= hours


def time_until_text(hours: float) -> str:
    """Relative phrase used in cron reminders, e.g. ``in 3 hours``."""
    rounded = round(hours)
    if rounded < 1:
        return "starting soon"
    if rounded == 1:
        return "in 1 hour"
    if rounded < 24:
        return f"in {rounded} hours"
    return "tomorrow"
