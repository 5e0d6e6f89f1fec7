"""
Client-side reminder scheduler.

One instance per client session. ``setup`` creates the user's reminder
records and arms the triggers; each check loads the events of the next 48
hours, decides which reminder is due and shows it through the display.

State moves ``idle -> setting-up -> scheduled <-> checking`` and back to
``idle`` on ``destroy``.
"""

import asyncio
import time
from collections.abc import Callable
from datetime import UTC, datetime, tzinfo
from enum import Enum
from typing import Any

import structlog

from app.client.platform import NotificationDisplay, ReminderStore
from app.core.reminders import (
    BACKUP_DELAY_SECONDS,
    CHECK_INTERVAL_SECONDS,
    CHECK_THROTTLE_SECONDS,
    CHECK_WINDOW_HOURS,
    SETUP_COOLDOWN_SECONDS,
    SETUP_WINDOW_DAYS,
    TRIGGER_DEBOUNCE_SECONDS,
    NotificationType,
    decide_notification_type,
    hours_until,
    is_immediate,
    reminder_message,
    reminder_tag,
)

logger = structlog.get_logger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    SETTING_UP = "setting-up"
    SCHEDULED = "scheduled"
    CHECKING = "checking"


class ReminderScheduler:
    """Shows day-before and event-day reminders at most once per event and type."""

    def __init__(
        self,
        store: ReminderStore,
        display: NotificationDisplay,
        *,
        tz: tzinfo = UTC,
        clock: Callable[[], datetime] | None = None,
        monotonic: Callable[[], float] = time.monotonic,
        check_interval: float = CHECK_INTERVAL_SECONDS,
        check_throttle: float = CHECK_THROTTLE_SECONDS,
        trigger_debounce: float = TRIGGER_DEBOUNCE_SECONDS,
        backup_delay: float = BACKUP_DELAY_SECONDS,
        setup_cooldown: float = SETUP_COOLDOWN_SECONDS,
        setup_window_days: int = SETUP_WINDOW_DAYS,
        check_window_hours: int = CHECK_WINDOW_HOURS,
    ):
        self.store = store
        self.display = display
        self.tz = tz
        self._clock = clock or (lambda: datetime.now(UTC))
        self._monotonic = monotonic

        self.check_interval = check_interval
        self.check_throttle = check_throttle
        self.trigger_debounce = trigger_debounce
        self.backup_delay = backup_delay
        self.setup_cooldown = setup_cooldown
        self.setup_window_days = setup_window_days
        self.check_window_hours = check_window_hours

        self.state = SchedulerState.IDLE
        self.user_id: str | None = None
        self.visible = True

        # In-flight setups keyed by user id; concurrent callers share one
        self._setups: dict[str, asyncio.Task[bool]] = {}
        self._last_setup: dict[str, float] = {}
        self._last_check: float | None = None
        self._checking = False

        self._periodic: asyncio.Task | None = None
        self._debounce: asyncio.Task | None = None
        self._backups: set[asyncio.Task] = set()
        self._checks: set[asyncio.Task] = set()

    async def setup(self, user_id: str) -> bool:
        """
        Schedule reminder records for a user and start checking.

        Concurrent calls for the same user wait for the same setup. A setup
        finished less than ``setup_cooldown`` seconds ago is reported as a
        success without doing any work.

        Returns:
            True once the scheduler is running for the user
        """
        if not user_id:
            return False

        in_flight = self._setups.get(user_id)
        if in_flight is not None:
            return await asyncio.shield(in_flight)

        last = self._last_setup.get(user_id)
        if (
            last is not None
            and self.user_id == user_id
            and self.state != SchedulerState.IDLE
            and self._monotonic() - last < self.setup_cooldown
        ):
            logger.debug("reminder_setup_cooldown", user_id=user_id)
            return True

        task = asyncio.ensure_future(self._do_setup(user_id))
        self._setups[user_id] = task
        task.add_done_callback(lambda t: self._forget_setup(user_id, t))
        return await asyncio.shield(task)

    def _forget_setup(self, user_id: str, task: asyncio.Task) -> None:
        if self._setups.get(user_id) is task:
            del self._setups[user_id]

    async def _do_setup(self, user_id: str) -> bool:
        if self.user_id is not None and self.user_id != user_id:
            self._cancel_timers()

        self.state = SchedulerState.SETTING_UP
        self.user_id = user_id

        try:
            created = await self.store.schedule(user_id, self.setup_window_days)
        except Exception as e:
            logger.error("reminder_setup_failed", user_id=user_id, error=str(e))
            self.state = SchedulerState.IDLE
            return False

        self._last_setup[user_id] = self._monotonic()
        self.state = SchedulerState.SCHEDULED
        logger.info("reminders_set_up", user_id=user_id, created=created)

        if self._periodic is None or self._periodic.done():
            self._periodic = asyncio.create_task(self._periodic_loop())
        self.trigger()
        return True

    def on_visibility_change(self, visible: bool) -> None:
        """Page visibility changed; checking resumes when it becomes visible."""
        self.visible = visible
        if visible:
            self.trigger()

    def on_focus(self) -> None:
        self.trigger()

    def on_online(self) -> None:
        self.trigger()

    def trigger(self) -> None:
        """Schedule a debounced check; a newer trigger replaces a pending one."""
        if self.state == SchedulerState.IDLE:
            return
        if self._debounce is not None and not self._debounce.done():
            self._debounce.cancel()
        self._debounce = asyncio.create_task(self._debounced_check())

    async def _debounced_check(self) -> None:
        await asyncio.sleep(self.trigger_debounce)
        self._spawn_check()

    async def _periodic_loop(self) -> None:
        while True:
            await asyncio.sleep(self.check_interval)
            if self.visible:
                self._spawn_check()

    def _spawn_check(self) -> None:
        # Checks run in their own task so cancelling timers never interrupts one
        task = asyncio.create_task(self.check())
        self._checks.add(task)
        task.add_done_callback(self._checks.discard)

    async def check(self, force: bool = False) -> int:
        """
        Show every reminder that is due now.

        Throttled to one run per ``check_throttle`` seconds unless forced; a
        check already running is never re-entered. A store failure ends the
        run early and keeps what was already recorded.

        Returns:
            Number of notifications shown
        """
        if self.state == SchedulerState.IDLE or self.user_id is None:
            return 0
        if self._checking:
            return 0

        started = self._monotonic()
        if (
            not force
            and self._last_check is not None
            and started - self._last_check < self.check_throttle
        ):
            logger.debug("reminder_check_throttled")
            return 0

        self._last_check = started
        self._checking = True
        self.state = SchedulerState.CHECKING
        user_id = self.user_id
        shown = 0

        try:
            upcoming = await self.store.upcoming_events(self.check_window_hours)
            if not upcoming:
                return 0

            pairs = await self.store.sent_pairs(user_id, [e["id"] for e in upcoming])
            sent: dict[str, set[str]] = {}
            for pair in pairs:
                sent.setdefault(str(pair["event_id"]), set()).add(str(pair["notification_type"]))

            now = self._clock()
            for event in upcoming:
                event_key = str(event["id"])
                hours = hours_until(event, now, self.tz)
                notification_type = decide_notification_type(hours, sent.get(event_key, set()))
                if notification_type is None:
                    continue

                title, body = reminder_message(event, notification_type)
                data = {
                    "event_id": event_key,
                    "notification_type": notification_type.value,
                    "url": "/",
                }
                await self.display.show(title, body, reminder_tag(event_key), data)
                await self.store.mark_sent(user_id, event["id"], notification_type.value)
                sent.setdefault(event_key, set()).add(notification_type.value)
                shown += 1

                if notification_type == NotificationType.EVENT_DAY and is_immediate(hours):
                    self._schedule_backup(title, body, event_key, data)

        except Exception as e:
            logger.error("reminder_check_failed", user_id=user_id, error=str(e), shown=shown)
        finally:
            self._checking = False
            if self.state == SchedulerState.CHECKING:
                self.state = SchedulerState.SCHEDULED

        if shown:
            logger.info("reminders_shown", user_id=user_id, shown=shown)
        return shown

    def _schedule_backup(self, title: str, body: str, event_id: str, data: dict[str, Any]) -> None:
        task = asyncio.create_task(self._send_backup(title, body, event_id, data))
        self._backups.add(task)
        task.add_done_callback(self._backups.discard)

    async def _send_backup(self, title: str, body: str, event_id: str, data: dict[str, Any]) -> None:
        await asyncio.sleep(self.backup_delay)
        try:
            await self.display.show(title, body, reminder_tag(event_id, backup=True), data)
        except Exception as e:
            logger.warning("backup_notification_failed", event_id=event_id, error=str(e))

    def _cancel_timers(self) -> list[asyncio.Task]:
        cancelled = []
        for task in (self._periodic, self._debounce, *self._backups):
            if task is not None and not task.done():
                task.cancel()
                cancelled.append(task)
        self._periodic = None
        self._debounce = None
        self._backups.clear()
        return cancelled

    async def destroy(self) -> None:
        """
        Stop the timers and reset every flag so setup can run again at once.

        A check that already started is left to finish, and no new check runs
        until it has.
        """
        cancelled = self._cancel_timers()
        await asyncio.gather(*cancelled, return_exceptions=True)

        self._setups.clear()
        self._last_setup.clear()
        self._last_check = None
        self.user_id = None
        self.state = SchedulerState.IDLE
        logger.info("reminder_scheduler_destroyed")
