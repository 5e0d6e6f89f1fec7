"""
Server-side reminder broadcasts.

Every entry point re-reads events and tokens, sends through the messaging
gateway and records each send with its outcome in ``notifications_log``.
Tokens the provider reports as permanently invalid are deleted. Nothing is
deduplicated across calls: invoking a broadcast twice sends twice.
"""

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import NotFoundException
from app.core.firebase import firebase_project_id
from app.core.push import (
    MulticastResult,
    ensure_push_available,
    explain_error,
    send_multicast,
    send_to_token,
    token_preview,
)
from app.core.reminders import (
    as_time,
    event_starts_at,
    get_timezone,
    hours_until,
    time_until_text,
    within_window,
)
from app.models.notifications import notifications_log
from app.models.push_tokens import fcm_tokens
from app.services.preference_service import PreferenceService
from app.services.reminder_service import ReminderService
from app.services.token_service import TokenService

logger = structlog.get_logger(__name__)

BROADCAST_TITLE = "📅 Upcoming Events"
DIGEST_TITLE = "Daily Calendar Reminder"
DIAGNOSTIC_TITLE = "🔍 FCM Diagnostic Test"
MAX_LISTED_EVENTS = 3


def broadcast_body(upcoming: list[dict[str, Any]], hours_ahead: int) -> str:
    """Summary line naming the first few upcoming events."""
    if len(upcoming) == 1:
        return f'"Event {upcoming[0]["title"]}" is coming up in the next {hours_ahead} hours'

    listed = ", ".join(e["title"] for e in upcoming[:MAX_LISTED_EVENTS])
    more = len(upcoming) - MAX_LISTED_EVENTS
    more_text = f" and {more} more" if more > 0 else ""
    return f"{len(upcoming)} events coming up: {listed}{more_text}"


def delivery_status(result: MulticastResult) -> str:
    return "sent" if result.success_count > 0 else "failed"


def event_reminder_message(event: dict[str, Any], now: datetime, tz: Any) -> tuple[str, str, int]:
    """Title, body and rounded hours for a single-event cron reminder."""
    left = round(hours_until(event, now, tz))
    starts = event_starts_at(event, tz)
    when = starts.strftime("%b %d")
    if as_time(event.get("time")):
        when = f"{when}, {starts.strftime('%I:%M %p').lstrip('0')}"
    title = f"📅 Upcoming Event: {event['title']}"
    body = f'Event "{event["title"]}" is {time_until_text(left)} ({when})'
    return title, body, left


class BroadcastService:
    """Stateless broadcast, cron and diagnostic operations."""

    @staticmethod
    async def upcoming_events(
        db: AsyncSession,
        hours_ahead: int,
        now: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Events starting between now and ``hours_ahead`` hours from now."""
        now = now or datetime.now(UTC)
        tz = get_timezone(settings.reminder_timezone)
        local_now = now.astimezone(tz)
        candidates = await ReminderService.events_between(
            db,
            local_now.date(),
            (local_now + timedelta(hours=hours_ahead)).date(),
        )
        return [e for e in candidates if within_window(e, now, hours_ahead, tz)]

    @staticmethod
    async def log_notification(
        db: AsyncSession,
        user_id: UUID,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
        status: str = "sent",
    ) -> None:
        """Append a row to the send log; the caller commits."""
        await db.execute(
            notifications_log.insert().values(
                user_id=user_id,
                title=title,
                body=body,
                data=data,
                status=status,
            )
        )

    @staticmethod
    async def _prune(db: AsyncSession, result: MulticastResult) -> int:
        dead = result.dead_tokens()
        if not dead:
            return 0
        return await TokenService.remove_tokens(db, dead)

    @staticmethod
    async def broadcast_upcoming(
        db: AsyncSession,
        hours_ahead: int = 24,
        test_mode: bool = False,
        custom_title: str | None = None,
        custom_body: str | None = None,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """
        Send one summary notification about upcoming events to every user.

        Args:
            db: Database session
            hours_ahead: Size of the lookup window
            test_mode: Tag the payload as a test broadcast
            custom_title: Overrides the generated title
            custom_body: Overrides the generated body
            now: Current time, defaults to now

        Returns:
            Counters, per-user results and the events included
        """
        now = now or datetime.now(UTC)
        upcoming = await BroadcastService.upcoming_events(db, hours_ahead, now)
        event_summaries = [
            {"id": e["id"], "title": e["title"], "start_date": e["start_date"], "time": e["time"]}
            for e in upcoming
        ]
        report: dict[str, Any] = {
            "success": True,
            "message": "",
            "events_found": len(upcoming),
            "users_processed": 0,
            "users_notified": 0,
            "notifications_sent": 0,
            "failed_users": 0,
            "errors": [],
            "events": event_summaries,
            "results": [],
            "debug": {"hours_ahead": hours_ahead, "test_mode": test_mode},
        }

        if not upcoming:
            report["message"] = f"No events in the next {hours_ahead} hours"
            logger.info("broadcast_skipped_no_events", hours_ahead=hours_ahead)
            return report

        grouped = TokenService.group_by_user(await TokenService.list_tokens(db))
        if not grouped:
            report["success"] = False
            report["message"] = "No FCM tokens found"
            report["errors"].append("No FCM tokens found")
            return report

        ensure_push_available()

        title = custom_title or BROADCAST_TITLE
        body = custom_body or broadcast_body(upcoming, hours_ahead)
        data = {
            "type": "broadcast_test" if test_mode else "broadcast_reminder",
            "events_count": len(upcoming),
            "timestamp": now.isoformat(),
            "test_mode": str(test_mode).lower(),
        }
        report["debug"].update(
            {"title": title, "body": body, "title_length": len(title), "body_length": len(body)}
        )

        for user_id, tokens in grouped.items():
            report["users_processed"] += 1
            user_result: dict[str, Any] = {
                "user_id": user_id,
                "token_count": len(tokens),
                "success_count": 0,
                "failure_count": 0,
                "removed_tokens": 0,
                "errors": [],
            }

            try:
                result = await send_multicast(tokens, title, body, data)
            except Exception as e:
                logger.error("broadcast_user_failed", user_id=str(user_id), error=str(e))
                user_result["failure_count"] = len(tokens)
                user_result["errors"].append(str(e))
                report["failed_users"] += 1
                report["errors"].append(f"User {user_id}: {e}")
                report["results"].append(user_result)
                continue

            user_result["success_count"] = result.success_count
            user_result["failure_count"] = result.failure_count
            for failure in result.failures():
                detail = f"{token_preview(failure.token)} {failure.error_code}"
                user_result["errors"].append(detail)
                report["errors"].append(f"User {user_id}: {detail}")

            if result.success_count > 0:
                report["users_notified"] += 1
                report["notifications_sent"] += result.success_count
            else:
                report["failed_users"] += 1
            await BroadcastService.log_notification(
                db,
                user_id,
                title,
                body,
                {
                    **data,
                    "success_count": result.success_count,
                    "failure_count": result.failure_count,
                },
                status=delivery_status(result),
            )
            await db.commit()

            user_result["removed_tokens"] = await BroadcastService._prune(db, result)
            report["results"].append(user_result)

        report["message"] = (
            f"Sent {report['notifications_sent']} notifications to "
            f"{report['users_notified']} of {report['users_processed']} users"
        )
        logger.info(
            "broadcast_completed",
            events_found=report["events_found"],
            users_processed=report["users_processed"],
            users_notified=report["users_notified"],
            notifications_sent=report["notifications_sent"],
            failed_users=report["failed_users"],
        )
        return report

    @staticmethod
    async def send_to_users(
        db: AsyncSession,
        user_ids: list[UUID],
        title: str,
        body: str,
        data: dict[str, str] | None = None,
        image_url: str | None = None,
    ) -> dict[str, Any]:
        """
        Send one notification to every device of the given users.

        Raises:
            NotFoundException: If none of the users has a token
            PushProviderUnavailableException: If Firebase is not initialized
        """
        rows = await TokenService.list_tokens(db, user_ids)
        if not rows:
            raise NotFoundException("No FCM tokens found for the specified users")

        ensure_push_available()

        tokens = [row["token"] for row in rows]
        result = await send_multicast(tokens, title, body, data, image_url)

        delivered = {r.token for r in result.results if r.success}
        log_data = {**(data or {}), "type": (data or {}).get("type", "custom")}
        for row in rows:
            status = "sent" if row["token"] in delivered else "failed"
            await BroadcastService.log_notification(
                db, row["user_id"], title, body, log_data, status=status
            )
        await db.commit()

        removed = await BroadcastService._prune(db, result)
        owners = {row["token"]: row["user_id"] for row in rows}

        logger.info(
            "notification_sent_to_users",
            users=len(user_ids),
            total_tokens=len(tokens),
            success_count=result.success_count,
            failure_count=result.failure_count,
        )
        return {
            "success_count": result.success_count,
            "failure_count": result.failure_count,
            "messages_sent": result.success_count,
            "total_tokens": len(tokens),
            "removed_tokens": removed,
            "message": f"Sent to {result.success_count} of {len(tokens)} devices",
            "results": [
                {
                    "user_id": owners[r.token],
                    "token_preview": token_preview(r.token),
                    "success": r.success,
                    "message_id": r.message_id,
                    "error_code": r.error_code,
                    "error_message": r.error_message,
                }
                for r in result.results
            ],
        }

    @staticmethod
    async def diagnose_user(db: AsyncSession, user_id: UUID) -> dict[str, Any]:
        """
        Send a test message to each of a user's tokens individually.

        Tokens reported dead are deleted as they are found.

        Raises:
            NotFoundException: If the user has no tokens
        """
        rows = await TokenService.list_tokens(db, [user_id])
        if not rows:
            raise NotFoundException("No FCM tokens found for this user")

        ensure_push_available()

        results = []
        for row in rows:
            outcome = await send_to_token(
                row["token"],
                DIAGNOSTIC_TITLE,
                "If you see this, notifications work on this device",
                {"type": "fcm_diagnostic", "timestamp": datetime.now(UTC).isoformat()},
            )

            removed = False
            if outcome.is_dead:
                await db.execute(delete(fcm_tokens).where(fcm_tokens.c.id == row["id"]))
                await db.commit()
                removed = True

            results.append(
                {
                    "token_id": row["id"],
                    "token_preview": token_preview(row["token"]),
                    "device_info": row["device_info"],
                    "created_at": row["created_at"],
                    "success": outcome.success,
                    "message_id": outcome.message_id,
                    "error_code": outcome.error_code,
                    "error_message": outcome.error_message,
                    "explanation": None if outcome.success else explain_error(outcome.error_code),
                    "removed": removed,
                }
            )

        successful = sum(1 for r in results if r["success"])
        summary = {
            "total_tokens": len(results),
            "successful_tokens": successful,
            "failed_tokens": len(results) - successful,
            "removed_tokens": sum(1 for r in results if r["removed"]),
            "all_tokens_working": successful == len(results),
        }
        logger.info("fcm_diagnosis_completed", user_id=str(user_id), **summary)
        return {
            "user_id": user_id,
            "firebase_project_id": firebase_project_id(),
            "results": results,
            "summary": summary,
        }

    @staticmethod
    async def run_event_reminders(
        db: AsyncSession,
        now: datetime | None = None,
        force: bool = False,
    ) -> dict[str, Any]:
        """
        Cron: remind each user of every event in the next 24 hours.

        A user is only notified during the hour of their reminder time in
        their own timezone, unless ``force`` is set. Users who turned daily
        reminders off are skipped.
        """
        now = now or datetime.now(UTC)
        tz = get_timezone(settings.reminder_timezone)
        upcoming = await BroadcastService.upcoming_events(db, 24, now)
        report: dict[str, Any] = {
            "success": True,
            "message": "",
            "timestamp": now,
            "events_found": len(upcoming),
            "users_processed": 0,
            "users_skipped": 0,
            "notifications_sent": 0,
            "results": [],
        }

        if not upcoming:
            report["message"] = "No events in the next 24 hours"
            logger.info("cron_skipped_no_events")
            return report

        grouped = TokenService.group_by_user(await TokenService.list_tokens(db))
        if not grouped:
            report["message"] = "No FCM tokens found"
            return report

        preferences = await PreferenceService.get_many(db, list(grouped))

        for user_id, tokens in grouped.items():
            prefs = preferences[user_id]
            local_hour = now.astimezone(get_timezone(prefs["timezone"])).hour
            user_result: dict[str, Any] = {
                "user_id": user_id,
                "status": "sent",
                "reason": None,
                "local_hour": local_hour,
                "notifications_sent": 0,
            }

            if not prefs["daily_reminders"]:
                user_result.update(status="skipped", reason="daily reminders disabled")
            elif not force and local_hour != as_time(prefs["reminder_time"]).hour:
                user_result.update(status="skipped", reason="not reminder hour")
            if user_result["status"] == "skipped":
                report["users_skipped"] += 1
                report["results"].append(user_result)
                continue

            ensure_push_available()
            report["users_processed"] += 1
            for event in upcoming:
                title, body, left = event_reminder_message(event, now, tz)
                data = {
                    "type": "event_reminder",
                    "event_id": str(event["id"]),
                    "event_title": event["title"],
                    "event_start_date": str(event["start_date"]),
                    "hours_until": left,
                    "timestamp": now.isoformat(),
                }
                try:
                    result = await send_multicast(tokens, title, body, data)
                except Exception as e:
                    logger.error(
                        "cron_reminder_failed",
                        user_id=str(user_id),
                        event_id=str(event["id"]),
                        error=str(e),
                    )
                    user_result.update(status="failed", reason=str(e))
                    continue

                if result.success_count > 0:
                    user_result["notifications_sent"] += 1
                await BroadcastService.log_notification(
                    db,
                    user_id,
                    title,
                    body,
                    {**data, "success_count": result.success_count},
                    status=delivery_status(result),
                )
                await db.commit()

                await BroadcastService._prune(db, result)
                tokens = [t for t in tokens if t not in result.dead_tokens()]
                if not tokens:
                    break

            report["notifications_sent"] += user_result["notifications_sent"]
            report["results"].append(user_result)

        report["message"] = f"Sent {report['notifications_sent']} notifications"
        logger.info(
            "cron_reminders_completed",
            events_found=report["events_found"],
            users_processed=report["users_processed"],
            users_skipped=report["users_skipped"],
            notifications_sent=report["notifications_sent"],
        )
        return report

    @staticmethod
    async def run_daily_digest(db: AsyncSession, now: datetime | None = None) -> dict[str, Any]:
        """
        Test cron: one digest per user with tokens, ignoring preferences.

        Every user gets the number of events in the next 24 hours; users are
        skipped when there are none.
        """
        now = now or datetime.now(UTC)
        upcoming = await BroadcastService.upcoming_events(db, 24, now)
        grouped = TokenService.group_by_user(await TokenService.list_tokens(db))
        report: dict[str, Any] = {
            "timestamp": now,
            "total_users": len(grouped),
            "users_with_events": 0,
            "notifications_sent": 0,
            "users": [],
            "errors": [],
        }

        if not grouped:
            report["errors"].append("No users with FCM tokens found")
            return report

        count = len(upcoming)
        for user_id, tokens in grouped.items():
            user_result: dict[str, Any] = {
                "user_id": user_id,
                "token_count": len(tokens),
                "events_count": count,
                "notification_sent": False,
                "error": None,
            }
            report["users"].append(user_result)

            if count == 0:
                user_result["error"] = "No events in next 24 hours"
                continue

            report["users_with_events"] += 1
            ensure_push_available()
            plural = "s" if count != 1 else ""
            body = f"You have {count} event{plural} coming up in the next 24 hours"
            data = {"type": "daily_reminder", "events_count": count, "timestamp": now.isoformat()}

            try:
                result = await send_multicast(tokens, DIGEST_TITLE, body, data)
            except Exception as e:
                logger.error("daily_digest_failed", user_id=str(user_id), error=str(e))
                user_result["error"] = str(e)
                report["errors"].append(f"User {user_id}: {e}")
                continue

            if result.success_count > 0:
                user_result["notification_sent"] = True
                report["notifications_sent"] += 1
            else:
                user_result["error"] = "Notification sending failed"
            await BroadcastService.log_notification(
                db, user_id, DIGEST_TITLE, body, data, status=delivery_status(result)
            )
            await db.commit()

            await BroadcastService._prune(db, result)

        logger.info(
            "daily_digest_completed",
            total_users=report["total_users"],
            users_with_events=report["users_with_events"],
            notifications_sent=report["notifications_sent"],
        )
        return report

    @staticmethod
    async def cleanup_all_tokens(db: AsyncSession) -> dict[str, Any]:
        """Delete every stored token so clients must re-register."""
        removed, affected = await TokenService.remove_all_tokens(db)
        return {
            "success": True,
            "removed": removed,
            "affected_users": affected,
            "message": f"Removed {removed} tokens from {affected} users",
        }
