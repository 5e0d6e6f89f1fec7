"""HTTP client for the token and reminder endpoints."""

from typing import Any

import httpx
import structlog

logger = structlog.get_logger(__name__)


class CalendarApiClient:
    """
    Token and reminder store backed by the REST API.

    The bearer token identifies the user, so the ``user_id`` arguments of
    the store methods are only used for logging.
    """

    def __init__(
        self,
        base_url: str,
        access_token: str,
        *,
        api_prefix: str = "/api/v1",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}{api_prefix}",
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "CalendarApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, url, **kwargs)
        if response.is_error:
            logger.warning(
                "api_request_failed",
                method=method,
                url=url,
                status_code=response.status_code,
            )
        response.raise_for_status()
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def save_token(self, user_id: str, token: str, device_info: str | None) -> None:
        await self._request(
            "POST",
            "/notifications/tokens",
            json={"token": token, "device_info": device_info},
        )

    async def remove_user_tokens(self, user_id: str) -> int:
        result = await self._request("DELETE", "/notifications/tokens")
        return result["removed"]

    async def schedule(self, user_id: str, days: int) -> int:
        result = await self._request("POST", "/notifications/reminders/schedule", json={"days": days})
        return result["scheduled"]

    async def upcoming_events(self, hours: int) -> list[dict[str, Any]]:
        return await self._request(
            "GET", "/notifications/reminders/upcoming-events", params={"hours": hours}
        )

    async def sent_pairs(self, user_id: str, event_ids: list[Any]) -> list[dict[str, Any]]:
        if not event_ids:
            return []
        return await self._request(
            "GET",
            "/notifications/reminders/sent",
            params=[("event_ids", str(event_id)) for event_id in event_ids],
        )

    async def mark_sent(self, user_id: str, event_id: Any, notification_type: str) -> None:
        await self._request(
            "POST",
            "/notifications/reminders/mark-sent",
            json={"event_id": str(event_id), "notification_type": notification_type},
        )
