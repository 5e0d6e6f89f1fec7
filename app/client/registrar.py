"""Push token registration for a signed-in user."""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import structlog

from app.client.platform import (
    PermissionProvider,
    PushMessaging,
    ServiceWorkerContainer,
    ServiceWorkerRegistration,
    TokenStore,
)
from app.core.push import token_preview

logger = structlog.get_logger(__name__)

SERVICE_WORKER_SCRIPT = "/firebase-messaging-sw.js"
FALLBACK_TITLE = "BG Events"
FALLBACK_BODY = "You have a new notification"


class PushTokenRegistrar:
    """
    Obtains the device push token and keeps the server copy current.

    The foreground message handler is attached once per instance, on the
    first successful initialization, so repeated calls never stack
    listeners.
    """

    def __init__(
        self,
        service_workers: ServiceWorkerContainer,
        permissions: PermissionProvider,
        messaging: PushMessaging,
        store: TokenStore,
        *,
        script_url: str = SERVICE_WORKER_SCRIPT,
        user_agent: str = "unknown",
        clock: Callable[[], datetime] | None = None,
    ):
        self.service_workers = service_workers
        self.permissions = permissions
        self.messaging = messaging
        self.store = store
        self.script_url = script_url
        self.user_agent = user_agent
        self._clock = clock or (lambda: datetime.now(UTC))

        self._token: str | None = None
        self._initialized = False
        self._handler_registered = False
        self._registration: ServiceWorkerRegistration | None = None

    @property
    def current_token(self) -> str | None:
        return self._token

    @property
    def is_ready(self) -> bool:
        return self._initialized and self._token is not None

    async def initialize_for_user(self, user_id: str, force_refresh: bool = False) -> bool:
        """
        Register the device for push notifications.

        Args:
            user_id: Signed-in user
            force_refresh: Save the token even if it did not change

        Returns:
            True when a token is registered, False on any failure
        """
        if not user_id or not user_id.strip():
            logger.warning("push_registration_missing_user")
            return False

        if self.is_ready and not force_refresh:
            return True

        try:
            registration = await self._ensure_registration()

            permission = await self.permissions.request_permission()
            if permission != "granted":
                logger.info("notification_permission_not_granted", permission=permission)
                return False

            token = await self.messaging.get_token(registration)
            if not token:
                logger.warning("push_token_unavailable", user_id=user_id)
                return False

            if token != self._token or force_refresh:
                await self.store.save_token(user_id, token, self._device_info())
                logger.info(
                    "push_token_saved",
                    user_id=user_id,
                    token_preview=token_preview(token),
                    forced=force_refresh,
                )
            self._token = token

            if not self._handler_registered:
                self.messaging.on_message(self._handle_foreground_message)
                self._handler_registered = True

            self._initialized = True
            return True

        except Exception as e:
            logger.error("push_registration_failed", user_id=user_id, error=str(e))
            return False

    async def refresh_token(self, user_id: str) -> bool:
        """Fetch and save the token again."""
        return await self.initialize_for_user(user_id, force_refresh=True)

    async def cleanup(self, user_id: str) -> bool:
        """
        Remove every server token row of the user, e.g. on sign-out.

        Local state is cleared even when the store call fails.
        """
        try:
            removed = await self.store.remove_user_tokens(user_id)
            logger.info("push_tokens_cleaned_up", user_id=user_id, removed=removed)
            return True
        except Exception as e:
            logger.error("push_token_cleanup_failed", user_id=user_id, error=str(e))
            return False
        finally:
            self._token = None
            self._initialized = False

    def destroy(self) -> None:
        """Forget the token and registration; the message handler stays attached."""
        self._token = None
        self._initialized = False
        self._registration = None

    async def _ensure_registration(self) -> ServiceWorkerRegistration:
        if self._registration is None:
            registration = await self.service_workers.get_registration(self.script_url)
            if registration is None:
                logger.info("service_worker_registering", script_url=self.script_url)
                registration = await self.service_workers.register(self.script_url)
            self._registration = registration
        return self._registration

    def _device_info(self) -> str:
        return f"{self.user_agent} - {self._clock().isoformat()}"

    async def _handle_foreground_message(self, payload: dict[str, Any]) -> None:
        notification = payload.get("notification") or {}
        data = payload.get("data") or {}
        title = notification.get("title") or FALLBACK_TITLE
        body = notification.get("body") or FALLBACK_BODY

        if self._registration is None:
            logger.warning("foreground_message_without_registration", title=title)
            return

        try:
            await self._registration.show_notification(
                title,
                {
                    "body": body,
                    "icon": notification.get("icon") or "/icon-192x192.png",
                    "tag": data.get("tag") or "foreground-message",
                    "data": data,
                },
            )
        except Exception as e:
            logger.error("foreground_message_display_failed", error=str(e))
