"""Database models."""

from app.models.base import metadata
from app.models.events import events
from app.models.notifications import notification_preferences, notifications, notifications_log
from app.models.push_tokens import fcm_tokens, push_subscriptions
from app.models.users import user_roles, users

__all__ = [
    "events",
    "fcm_tokens",
    "metadata",
    "notification_preferences",
    "notifications",
    "notifications_log",
    "push_subscriptions",
    "user_roles",
    "users",
]
