"""Reminder records, send log and per-user notification preferences."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    Time,
    UniqueConstraint,
    Uuid,
    func,
    text,
)

from app.models.base import JSONType, metadata

notifications = Table(
    "notifications",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "event_id",
        Uuid,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "user_id",
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("notify_date", Date, nullable=False),
    Column("notification_type", String(20), nullable=False),
    Column("sent", Boolean, nullable=False, server_default=text("false")),
    Column("sent_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "notification_type IN ('day_before', 'event_day')",
        name="notifications_type_check",
    ),
    # One reminder per (event, user, type)
    UniqueConstraint(
        "event_id", "user_id", "notification_type", name="unique_event_user_notification"
    ),
    Index("idx_notifications_user_notify_date", "user_id", "notify_date"),
    Index("idx_notifications_user_sent", "user_id", "sent"),
)

notifications_log = Table(
    "notifications_log",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "user_id",
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("title", Text, nullable=False),
    Column("body", Text, nullable=False),
    Column("data", JSONType, nullable=True),
    Column("status", String(20), nullable=False, server_default="sent"),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint("status IN ('sent', 'failed')", name="notifications_log_status_check"),
    Index("idx_notifications_log_user_id", "user_id"),
    Index("idx_notifications_log_created_at", "created_at"),
)

notification_preferences = Table(
    "notification_preferences",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "user_id",
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    ),
    Column("daily_reminders", Boolean, nullable=False, server_default=text("true")),
    Column("reminder_time", Time, nullable=False),
    Column("timezone", Text, nullable=False, server_default="UTC"),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)
