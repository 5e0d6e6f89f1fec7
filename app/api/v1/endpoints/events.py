"""Calendar event endpoints."""

from datetime import UTC, date, datetime
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import CacheManagerDep, CurrentUser, DatabaseSession
from app.schemas.events import (
    CalendarMonthResponse,
    EventCreate,
    EventResponse,
    EventStats,
    EventUpdate,
)
from app.services.event_service import EventService

router = APIRouter(prefix="/events", tags=["Events"])


@router.get("", response_model=list[EventResponse], summary="List events")
async def list_events(
    db: DatabaseSession,
    current_user: CurrentUser,
    from_date: date | None = Query(None, description="Only events ending on or after"),
    to_date: date | None = Query(None, description="Only events starting on or before"),
):
    """List events overlapping an optional date range, ordered by start date."""
    return await EventService().list_events(db, from_date=from_date, to_date=to_date)


@router.get(
    "/calendar",
    response_model=CalendarMonthResponse,
    summary="Month grid with laid-out event bars",
)
async def get_month_calendar(
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
    current_user: CurrentUser,
    year: int | None = Query(None, ge=1970, le=2100),
    month: int | None = Query(None, ge=1, le=12),
):
    """
    Month view as Sunday-first weeks.

    Args:
        year: Defaults to the current year
        month: Defaults to the current month

    Returns:
        Weeks with their event bar placements
    """
    today = datetime.now(UTC).date()
    return await EventService(cache_manager).get_month_calendar(
        db, year or today.year, month or today.month
    )


@router.get("/stats", response_model=EventStats, summary="Event counters")
async def get_event_stats(db: DatabaseSession, current_user: CurrentUser):
    """Total events, events this month and events in the next 7 days."""
    return await EventService().get_stats(db)


@router.get("/{event_id}", response_model=EventResponse, summary="Get event")
async def get_event(event_id: UUID, db: DatabaseSession, current_user: CurrentUser):
    """Get a single event."""
    return await EventService().get_event(db, event_id)


@router.post(
    "",
    response_model=EventResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create event (Admin, Super Admin)",
)
async def create_event(
    event_data: EventCreate,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
    current_user: CurrentUser,
):
    """
    Create an event owned by the current user.

    Raises:
        ForbiddenException: If the user is a Member
    """
    return await EventService(cache_manager).create_event(
        db, event_data, current_user["id"], current_user["role"]
    )


@router.patch("/{event_id}", response_model=EventResponse, summary="Update event")
async def update_event(
    event_id: UUID,
    event_data: EventUpdate,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
    current_user: CurrentUser,
):
    """
    Update an event.

    Super Admins can edit any event, Admins only their own.

    Raises:
        ForbiddenException: If the user may not edit this event
        NotFoundException: If the event does not exist
    """
    return await EventService(cache_manager).update_event(
        db, event_id, event_data, current_user["id"], current_user["role"]
    )


@router.delete(
    "/{event_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete event (Super Admin)",
)
async def delete_event(
    event_id: UUID,
    db: DatabaseSession,
    cache_manager: CacheManagerDep,
    current_user: CurrentUser,
) -> None:
    """Delete an event together with its reminder records."""
    await EventService(cache_manager).delete_event(db, event_id, current_user["role"])
