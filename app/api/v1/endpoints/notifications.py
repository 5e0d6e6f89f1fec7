"""Push token, reminder record and preference endpoints."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from app.core.reminders import CHECK_WINDOW_HOURS
from app.dependencies import CurrentUser, DatabaseSession
from app.schemas.events import EventResponse
from app.schemas.notifications import (
    MarkSentRequest,
    PushSubscriptionCreate,
    PushSubscriptionDelete,
    PushSubscriptionResponse,
    ReminderRecordResponse,
    ReminderWithEvent,
    ScheduleRequest,
    ScheduleResponse,
    SentReminder,
    TokenRegister,
    TokenRemoveResponse,
    TokenResponse,
)
from app.schemas.preferences import PreferencesResponse, PreferencesUpdate
from app.services.preference_service import PreferenceService
from app.services.reminder_service import ReminderService
from app.services.token_service import TokenService

router = APIRouter(tags=["Notifications"])


@router.post(
    "/notifications/tokens",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register FCM token",
)
async def register_fcm_token(
    token_data: TokenRegister,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> TokenResponse:
    """
    Register the device token of the authenticated user.

    Called after notification permission is granted and whenever the token
    changes. The user's existing row is replaced.

    Args:
        token_data: FCM token and device descriptor
        current_user: Authenticated user
        db: Database session

    Returns:
        Stored token row
    """
    token = await TokenService.register_token(
        db,
        current_user["id"],
        token_data.token,
        token_data.device_info,
    )
    return TokenResponse.model_validate(token)


@router.delete(
    "/notifications/tokens",
    response_model=TokenRemoveResponse,
    summary="Remove all tokens of the current user",
)
async def remove_fcm_tokens(current_user: CurrentUser, db: DatabaseSession) -> TokenRemoveResponse:
    """Delete every token row of the current user, e.g. on sign-out."""
    removed = await TokenService.remove_user_tokens(db, current_user["id"])
    return TokenRemoveResponse(removed=removed)


@router.get(
    "/notifications/tokens",
    response_model=list[TokenResponse],
    summary="List tokens of the current user",
)
async def list_fcm_tokens(current_user: CurrentUser, db: DatabaseSession):
    return await TokenService.list_tokens(db, [current_user["id"]])


@router.post(
    "/push/subscribe",
    response_model=PushSubscriptionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Save web-push subscription",
)
async def subscribe(
    subscription: PushSubscriptionCreate,
    current_user: CurrentUser,
    db: DatabaseSession,
):
    """Store a browser push subscription, replacing keys for a known endpoint."""
    return await TokenService.upsert_subscription(
        db,
        current_user["id"],
        subscription.endpoint,
        subscription.keys.p256dh,
        subscription.keys.auth,
        subscription.user_agent,
    )


@router.delete(
    "/push/subscribe",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove web-push subscription",
)
async def unsubscribe(
    subscription: PushSubscriptionDelete,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> None:
    await TokenService.delete_subscription(db, current_user["id"], subscription.endpoint)


@router.post(
    "/notifications/reminders/schedule",
    response_model=ScheduleResponse,
    summary="Create missing reminder records",
)
async def schedule_reminders(
    current_user: CurrentUser,
    db: DatabaseSession,
    request: ScheduleRequest | None = None,
) -> ScheduleResponse:
    """
    Create day-before and event-day reminder records for upcoming events.

    Safe to call repeatedly: existing (event, user, type) records are kept.
    """
    days = request.days if request else ScheduleRequest().days
    scheduled = await ReminderService.schedule_for_user(db, current_user["id"], days=days)
    return ScheduleResponse(scheduled=scheduled)


@router.get(
    "/notifications/reminders/upcoming-events",
    response_model=list[EventResponse],
    summary="Events in the reminder check window",
)
async def upcoming_events(
    current_user: CurrentUser,
    db: DatabaseSession,
    hours: int = Query(CHECK_WINDOW_HOURS, ge=1, le=168),
):
    return await ReminderService.list_upcoming_events(db, hours=hours)


@router.get(
    "/notifications/reminders/sent",
    response_model=list[SentReminder],
    summary="Reminders already delivered",
)
async def sent_reminders(
    current_user: CurrentUser,
    db: DatabaseSession,
    event_ids: list[UUID] | None = Query(None),
):
    """(event, type) pairs already marked sent for the current user."""
    return await ReminderService.sent_pairs(db, current_user["id"], event_ids)


@router.post(
    "/notifications/reminders/mark-sent",
    response_model=ReminderRecordResponse,
    summary="Record a shown reminder",
)
async def mark_reminder_sent(
    request: MarkSentRequest,
    current_user: CurrentUser,
    db: DatabaseSession,
):
    """
    Mark a reminder as shown, creating its record if needed.

    Raises:
        NotFoundException: If the event does not exist
    """
    return await ReminderService.mark_sent(
        db, current_user["id"], request.event_id, request.notification_type
    )


@router.get(
    "/notifications/reminders/due",
    response_model=list[ReminderWithEvent],
    summary="Unsent reminders due now",
)
async def due_reminders(current_user: CurrentUser, db: DatabaseSession):
    return await ReminderService.due_for_user(db, current_user["id"])


@router.get(
    "/notifications/reminders",
    response_model=list[ReminderWithEvent],
    summary="Reminders for the coming days",
)
async def upcoming_reminders(
    current_user: CurrentUser,
    db: DatabaseSession,
    days: int = Query(7, ge=1, le=90),
):
    """Reminder records for the notification bell, sent or not."""
    return await ReminderService.upcoming_for_user(db, current_user["id"], days=days)


@router.post(
    "/notifications/reminders/{record_id}/mark-sent",
    response_model=ReminderRecordResponse,
    summary="Mark a reminder record as sent",
)
async def mark_record_sent(record_id: UUID, current_user: CurrentUser, db: DatabaseSession):
    """
    Mark one reminder record as sent.

    Raises:
        NotFoundException: If the record does not belong to the current user
    """
    return await ReminderService.mark_sent_by_id(db, current_user["id"], record_id)


@router.get(
    "/notifications/preferences",
    response_model=PreferencesResponse,
    summary="Get notification preferences",
)
async def get_preferences(current_user: CurrentUser, db: DatabaseSession):
    return await PreferenceService.get(db, current_user["id"])


@router.put(
    "/notifications/preferences",
    response_model=PreferencesResponse,
    summary="Update notification preferences",
)
async def update_preferences(
    preferences: PreferencesUpdate,
    current_user: CurrentUser,
    db: DatabaseSession,
):
    """
    Save daily reminder settings.

    Args:
        preferences: Fields to change; timezone must be an IANA name
    """
    return await PreferenceService.upsert(db, current_user["id"], preferences)
