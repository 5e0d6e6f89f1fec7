"""Broadcast, cron and diagnostic schemas."""

import datetime as dt
from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class BroadcastRequest(BaseModel):
    """Broadcast upcoming events to every registered device."""

    hours_ahead: int = Field(default=24, ge=1, le=168)
    test_mode: bool = False
    custom_title: str | None = Field(None, max_length=100)
    custom_body: str | None = Field(None, max_length=500)


class BroadcastEvent(BaseModel):
    id: UUID
    title: str
    start_date: date
    time: dt.time | None = None


class BroadcastUserResult(BaseModel):
    """Outcome of the multicast sent to one user."""

    user_id: UUID
    token_count: int
    success_count: int
    failure_count: int
    removed_tokens: int = 0
    errors: list[str] = []


class BroadcastResponse(BaseModel):
    success: bool
    message: str
    events_found: int
    users_processed: int = 0
    users_notified: int = 0
    notifications_sent: int = 0
    failed_users: int = 0
    errors: list[str] = []
    events: list[BroadcastEvent] = []
    results: list[BroadcastUserResult] = []
    debug: dict[str, Any] = {}


class SendRequest(BaseModel):
    """Send a notification to specific users."""

    user_ids: list[UUID] = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=100)
    body: str = Field(..., min_length=1, max_length=500)
    data: dict[str, str] | None = Field(default=None, description="Optional data payload")
    image_url: str | None = None


class SendTokenResult(BaseModel):
    user_id: UUID
    token_preview: str
    success: bool
    message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None


class SendResponse(BaseModel):
    success_count: int
    failure_count: int
    messages_sent: int
    total_tokens: int
    removed_tokens: int
    message: str
    results: list[SendTokenResult]


class DiagnoseRequest(BaseModel):
    user_id: UUID


class DiagnoseTokenResult(BaseModel):
    """Single-send result for one stored token."""

    token_id: UUID
    token_preview: str
    device_info: str | None = None
    created_at: datetime | None = None
    success: bool
    message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    explanation: str | None = None
    removed: bool = False


class DiagnoseSummary(BaseModel):
    total_tokens: int
    successful_tokens: int
    failed_tokens: int
    removed_tokens: int
    all_tokens_working: bool


class DiagnoseResponse(BaseModel):
    user_id: UUID
    firebase_project_id: str | None = None
    results: list[DiagnoseTokenResult]
    summary: DiagnoseSummary


class CleanupResponse(BaseModel):
    success: bool
    removed: int
    affected_users: int
    message: str


class CronUserResult(BaseModel):
    """What the reminder cron did for one user."""

    user_id: UUID
    status: str = Field(..., description="sent, skipped or failed")
    reason: str | None = None
    local_hour: int | None = None
    notifications_sent: int = 0


class CronResponse(BaseModel):
    success: bool
    message: str
    timestamp: datetime
    events_found: int
    users_processed: int = 0
    users_skipped: int = 0
    notifications_sent: int = 0
    results: list[CronUserResult] = []


class DigestUserResult(BaseModel):
    user_id: UUID
    token_count: int
    events_count: int
    notification_sent: bool
    error: str | None = None


class DigestResponse(BaseModel):
    timestamp: datetime
    total_users: int
    users_with_events: int
    notifications_sent: int
    users: list[DigestUserResult] = []
    errors: list[str] = []


class EndpointUsage(BaseModel):
    """Usage description returned by GET on operator endpoints."""

    endpoint: str
    method: str
    description: str
    body: dict[str, str] = {}
