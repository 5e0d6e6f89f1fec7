"""
Collaborators the client components depend on.

In a browser these are the service worker container, the Notification
permission API and Firebase messaging. They are injected so the registrar
and scheduler run unchanged against real adapters, the HTTP API client or
in-memory fakes.
"""

from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import structlog

logger = structlog.get_logger(__name__)

MessageHandler = Callable[[dict[str, Any]], Awaitable[None]]


class ServiceWorkerRegistration(Protocol):
    async def show_notification(self, title: str, options: dict[str, Any]) -> None: ...


class ServiceWorkerContainer(Protocol):
    async def get_registration(self, script_url: str) -> ServiceWorkerRegistration | None: ...

    async def register(self, script_url: str) -> ServiceWorkerRegistration: ...


class PermissionProvider(Protocol):
    async def request_permission(self) -> str:
        """Return ``granted``, ``denied`` or ``default``."""
        ...


class PushMessaging(Protocol):
    async def get_token(self, registration: ServiceWorkerRegistration) -> str | None: ...

    def on_message(self, handler: MessageHandler) -> None: ...


class TokenStore(Protocol):
    async def save_token(self, user_id: str, token: str, device_info: str | None) -> None: ...

    async def remove_user_tokens(self, user_id: str) -> int: ...


class ReminderStore(Protocol):
    async def schedule(self, user_id: str, days: int) -> int: ...

    async def upcoming_events(self, hours: int) -> list[dict[str, Any]]: ...

    async def sent_pairs(self, user_id: str, event_ids: list[Any]) -> list[dict[str, Any]]: ...

    async def mark_sent(self, user_id: str, event_id: Any, notification_type: str) -> None: ...


class NotificationDisplay(Protocol):
    async def show(
        self,
        title: str,
        body: str,
        tag: str,
        data: dict[str, Any] | None = None,
    ) -> None: ...


class RegistrationDisplay:
    """Shows notifications through a service worker registration."""

    def __init__(self, registration: ServiceWorkerRegistration, icon: str = "/icon-192x192.png"):
        self.registration = registration
        self.icon = icon

    async def show(
        self,
        title: str,
        body: str,
        tag: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        await self.registration.show_notification(
            title,
            {
                "body": body,
                "icon": self.icon,
                "badge": self.icon,
                "tag": tag,
                "requireInteraction": True,
                "data": data or {},
            },
        )


class LoggingNotificationDisplay:
    """Display for headless runs: every notification becomes a log line."""

    def __init__(self) -> None:
        self.shown: list[dict[str, Any]] = []

    async def show(
        self,
        title: str,
        body: str,
        tag: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        self.shown.append({"title": title, "body": body, "tag": tag, "data": data or {}})
        logger.info("notification_displayed", title=title, body=body, tag=tag)
