"""Push token, subscription and reminder record schemas."""

import datetime as dt
from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.reminders import NotificationType


class TokenRegister(BaseModel):
    """Schema for registering an FCM token."""

    token: str = Field(..., min_length=1, description="Firebase Cloud Messaging token")
    device_info: str | None = Field(None, max_length=500, description="User agent and timestamp")


class TokenResponse(BaseModel):
    """Stored push token."""

    id: UUID
    user_id: UUID
    token: str
    device_info: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class TokenRemoveResponse(BaseModel):
    """Number of token rows removed."""

    removed: int


class PushSubscriptionKeys(BaseModel):
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class PushSubscriptionCreate(BaseModel):
    """Web-push subscription as produced by the browser."""

    endpoint: str = Field(..., min_length=1)
    keys: PushSubscriptionKeys
    user_agent: str | None = None


class PushSubscriptionDelete(BaseModel):
    endpoint: str = Field(..., min_length=1)


class PushSubscriptionResponse(BaseModel):
    id: UUID
    user_id: UUID
    endpoint: str
    user_agent: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class ScheduleRequest(BaseModel):
    """Create the reminder records for upcoming events."""

    days: int = Field(default=30, ge=1, le=90, description="Days ahead to schedule")


class ScheduleResponse(BaseModel):
    scheduled: int = Field(..., description="Reminder records missing before this call")


class SentReminder(BaseModel):
    """An (event, type) pair already delivered to the user."""

    event_id: UUID
    notification_type: NotificationType


class MarkSentRequest(BaseModel):
    event_id: UUID
    notification_type: NotificationType


class ReminderRecordResponse(BaseModel):
    """Reminder record for one (event, user, type)."""

    id: UUID
    event_id: UUID
    user_id: UUID
    notify_date: date
    notification_type: NotificationType
    sent: bool
    sent_at: datetime | None = None

    model_config = {"from_attributes": True}


class ReminderWithEvent(ReminderRecordResponse):
    """Reminder record joined with its event."""

    title: str
    start_date: date
    time: dt.time | None = None
    hours_until: float | None = None
