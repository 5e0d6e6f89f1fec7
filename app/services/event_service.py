"""Event service for calendar CRUD, month views and stats."""

from datetime import UTC, date, datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ForbiddenException, NotFoundException, ValidationException
from app.core.permissions import Role, can_create_event, can_delete_event, can_edit_event
from app.core.redis_client import CacheManager
from app.models.events import events
from app.schemas.events import EventCreate, EventUpdate
from app.services.calendar_layout import build_month, month_grid

logger = structlog.get_logger(__name__)


class EventService:
    """Service for calendar events."""

    # Cache TTL in seconds (5 minutes for month listings)
    MONTH_CACHE_TTL = 300
    MONTH_CACHE_PATTERN = "events:month:*"

    def __init__(self, cache_manager: CacheManager | None = None):
        """Initialize service with optional cache manager."""
        self.cache = cache_manager

    @staticmethod
    def _month_cache_key(year: int, month: int) -> str:
        return f"events:month:{year}-{month:02d}"

    def _invalidate(self) -> None:
        if self.cache:
            self.cache.delete_pattern(self.MONTH_CACHE_PATTERN)

    async def list_events(
        self,
        db: AsyncSession,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> list[dict[str, Any]]:
        """
        List events, optionally only those overlapping a date range.

        Args:
            db: Database session
            from_date: Keep events ending on or after this date
            to_date: Keep events starting on or before this date

        Returns:
            Events ordered by start date and time
        """
        query = select(events)
        if from_date:
            query = query.where(events.c.end_date >= from_date)
        if to_date:
            query = query.where(events.c.start_date <= to_date)
        query = query.order_by(events.c.start_date, events.c.time, events.c.title)

        result = await db.execute(query)
        return [dict(row) for row in result.mappings().all()]

    async def list_month(self, db: AsyncSession, year: int, month: int) -> list[dict[str, Any]]:
        """Events visible on a month grid, served from cache when possible."""
        cache_key = self._month_cache_key(year, month)
        if self.cache:
            cached = self.cache.get_json(cache_key)
            if cached is not None:
                return cached

        weeks = month_grid(year, month)
        rows = await self.list_events(db, from_date=weeks[0][0], to_date=weeks[-1][-1])

        if self.cache:
            self.cache.set_json(cache_key, rows, ttl=self.MONTH_CACHE_TTL)
        return rows

    async def get_month_calendar(self, db: AsyncSession, year: int, month: int) -> dict[str, Any]:
        """Month grid with event bars laid out per week."""
        rows = await self.list_month(db, year, month)
        return build_month(year, month, rows)

    async def get_event(self, db: AsyncSession, event_id: UUID) -> dict[str, Any]:
        """
        Get an event by ID.

        Raises:
            NotFoundException: If the event does not exist
        """
        result = await db.execute(select(events).where(events.c.id == event_id))
        event = result.mappings().first()
        if not event:
            raise NotFoundException("Event not found")
        return dict(event)

    async def create_event(
        self,
        db: AsyncSession,
        event_data: EventCreate,
        user_id: UUID,
        role: Role,
    ) -> dict[str, Any]:
        """
        Create an event owned by the caller.

        Raises:
            ForbiddenException: If the role cannot create events
        """
        if not can_create_event(role):
            raise ForbiddenException("Only Admins and Super Admins can create events")

        query = (
            events.insert()
            .values(**event_data.model_dump(), created_by=user_id)
            .returning(events)
        )
        result = await db.execute(query)
        await db.commit()
        event = dict(result.mappings().one())

        self._invalidate()
        logger.info("event_created", event_id=str(event["id"]), user_id=str(user_id))
        return event

    async def update_event(
        self,
        db: AsyncSession,
        event_id: UUID,
        event_data: EventUpdate,
        user_id: UUID,
        role: Role,
    ) -> dict[str, Any]:
        """
        Apply a partial update.

        Raises:
            NotFoundException: If the event does not exist
            ForbiddenException: If the caller may not edit this event
            ValidationException: If the resulting date range is inverted
        """
        existing = await self.get_event(db, event_id)
        if not can_edit_event(role, user_id, existing):
            raise ForbiddenException("You do not have permission to edit this event")

        changes = event_data.model_dump(exclude_unset=True)
        if not changes:
            return existing

        start = changes.get("start_date", existing["start_date"])
        end = changes.get("end_date", existing["end_date"])
        if end is None:
            end = changes["end_date"] = start
        if end < start:
            raise ValidationException("end_date must be on or after start_date")

        changes["updated_at"] = datetime.now(UTC)
        query = update(events).where(events.c.id == event_id).values(**changes).returning(events)
        result = await db.execute(query)
        await db.commit()
        event = dict(result.mappings().one())

        self._invalidate()
        logger.info("event_updated", event_id=str(event_id), fields=sorted(changes))
        return event

    async def delete_event(self, db: AsyncSession, event_id: UUID, role: Role) -> None:
        """
        Delete an event and, through the cascade, its reminder records.

        Raises:
            ForbiddenException: If the caller is not a Super Admin
            NotFoundException: If the event does not exist
        """
        if not can_delete_event(role):
            raise ForbiddenException("Only Super Admins can delete events")

        result = await db.execute(delete(events).where(events.c.id == event_id))
        await db.commit()
        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise NotFoundException("Event not found")

        self._invalidate()
        logger.info("event_deleted", event_id=str(event_id))

    async def get_stats(self, db: AsyncSession, today: date | None = None) -> dict[str, int]:
        """Total events, events touching the current month and events in the next 7 days."""
        today = today or datetime.now(UTC).date()
        month_start = today.replace(day=1)
        month_end = (month_start + timedelta(days=32)).replace(day=1) - timedelta(days=1)

        total = await db.scalar(select(func.count()).select_from(events))
        this_month = await db.scalar(
            select(func.count())
            .select_from(events)
            .where(events.c.start_date <= month_end, events.c.end_date >= month_start)
        )
        upcoming = await db.scalar(
            select(func.count())
            .select_from(events)
            .where(events.c.start_date >= today, events.c.start_date <= today + timedelta(days=7))
        )
        return {
            "total_events": total or 0,
            "events_this_month": this_month or 0,
            "upcoming_events": upcoming or 0,
        }
