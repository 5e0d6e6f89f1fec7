"""Per-user notification preferences."""

from datetime import UTC, datetime, time
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.reminders import as_time
from app.database import dialect_insert
from app.models.notifications import notification_preferences
from app.schemas.preferences import PreferencesUpdate

logger = structlog.get_logger(__name__)


def default_preferences() -> dict[str, Any]:
    """Preferences used for users who never saved any."""
    return {
        "daily_reminders": True,
        "reminder_time": as_time(settings.default_reminder_time) or time(6, 0),
        "timezone": settings.reminder_timezone,
        "updated_at": None,
    }


class PreferenceService:
    """Service for reading and saving notification preferences."""

    @staticmethod
    async def get(db: AsyncSession, user_id: UUID) -> dict[str, Any]:
        """Stored preferences, or the defaults when the user has none."""
        result = await db.execute(
            select(
                notification_preferences.c.daily_reminders,
                notification_preferences.c.reminder_time,
                notification_preferences.c.timezone,
                notification_preferences.c.updated_at,
            ).where(notification_preferences.c.user_id == user_id)
        )
        row = result.mappings().first()
        return dict(row) if row else default_preferences()

    @staticmethod
    async def get_many(db: AsyncSession, user_ids: list[UUID]) -> dict[UUID, dict[str, Any]]:
        """Preferences keyed by user, defaults filled in for missing users."""
        if not user_ids:
            return {}
        result = await db.execute(
            select(notification_preferences).where(
                notification_preferences.c.user_id.in_(user_ids)
            )
        )
        stored = {row["user_id"]: dict(row) for row in result.mappings().all()}
        return {uid: stored.get(uid) or default_preferences() for uid in user_ids}

    @staticmethod
    async def upsert(
        db: AsyncSession,
        user_id: UUID,
        data: PreferencesUpdate,
    ) -> dict[str, Any]:
        """
        Save preferences, merging the update over the current values.

        Args:
            db: Database session
            user_id: Preference owner
            data: Fields to change

        Returns:
            The saved preferences
        """
        merged = await PreferenceService.get(db, user_id)
        merged.update(data.model_dump(exclude_unset=True, exclude_none=True))
        merged["updated_at"] = datetime.now(UTC)

        stmt = dialect_insert(db, notification_preferences).values(user_id=user_id, **merged)
        stmt = stmt.on_conflict_do_update(
            index_elements=[notification_preferences.c.user_id],
            set_={
                "daily_reminders": stmt.excluded.daily_reminders,
                "reminder_time": stmt.excluded.reminder_time,
                "timezone": stmt.excluded.timezone,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await db.execute(stmt)
        await db.commit()

        logger.info("notification_preferences_saved", user_id=str(user_id))
        return merged
