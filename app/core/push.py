"""Firebase Cloud Messaging gateway."""

import asyncio
from dataclasses import dataclass, field
from typing import Any

import structlog
from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from app.core.exceptions import PushProviderUnavailableException
from app.core.firebase import is_firebase_initialized

logger = structlog.get_logger(__name__)

TOKEN_NOT_REGISTERED = "registration-token-not-registered"
INVALID_REGISTRATION_TOKEN = "invalid-registration-token"

# Provider codes meaning the token will never work again
DEAD_TOKEN_ERROR_CODES = frozenset({TOKEN_NOT_REGISTERED, INVALID_REGISTRATION_TOKEN})

ERROR_EXPLANATIONS = {
    TOKEN_NOT_REGISTERED: "Token is invalid/expired - app was uninstalled or token expired",
    INVALID_REGISTRATION_TOKEN: "Token format is invalid",
    "sender-id-mismatch": "Firebase project mismatch - check VAPID key",
    "third-party-auth-error": "APNs or web push credentials were rejected",
    "quota-exceeded": "Sending quota exceeded for this token or project",
    "unavailable": "FCM service temporarily unavailable",
    "internal": "FCM internal error, retry later",
    "invalid-argument": "Message format is invalid",
    "unauthenticated": "Firebase Admin authentication failed",
}

DEFAULT_ICON = "/icon-192x192.png"


def token_preview(token: str | None) -> str:
    """First characters of a token, safe for logs and responses."""
    if not token:
        return ""
    return f"{token[:20]}..."


def push_error_code(exc: BaseException | None) -> str | None:
    """
    Normalize a messaging exception into a provider error code.

    Args:
        exc: Exception attached to a send response

    Returns:
        Error code such as ``registration-token-not-registered`` or None
    """
    if exc is None:
        return None
    if isinstance(exc, messaging.UnregisteredError):
        return TOKEN_NOT_REGISTERED
    if isinstance(exc, messaging.SenderIdMismatchError):
        return "sender-id-mismatch"
    if isinstance(exc, messaging.QuotaExceededError):
        return "quota-exceeded"
    if isinstance(exc, messaging.ThirdPartyAuthError):
        return "third-party-auth-error"

    code = getattr(exc, "code", None)
    if code == firebase_exceptions.INVALID_ARGUMENT:
        # Payload problems share this code; only a named bad token is dead
        if "registration token" in str(exc).lower():
            return INVALID_REGISTRATION_TOKEN
        return "invalid-argument"
    if isinstance(code, str) and code:
        return code.lower().replace("_", "-")
    return "unknown"


def is_dead_token_error(code: str | None) -> bool:
    """Whether an error code means the token should be deleted."""
    return code in DEAD_TOKEN_ERROR_CODES


def explain_error(code: str | None) -> str:
    """Human readable explanation for diagnostics."""
    return ERROR_EXPLANATIONS.get(code or "", "Unknown FCM error")


@dataclass
class TokenSendResult:
    """Outcome of sending to a single token."""

    token: str
    success: bool
    message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None

    @property
    def is_dead(self) -> bool:
        return not self.success and is_dead_token_error(self.error_code)


@dataclass
class MulticastResult:
    """Per-token outcomes of a multicast send."""

    results: list[TokenSendResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def dead_tokens(self) -> list[str]:
        """Tokens the provider reported as permanently invalid."""
        return [r.token for r in self.results if r.is_dead]

    def failures(self) -> list[TokenSendResult]:
        return [r for r in self.results if not r.success]


def stringify_data(data: dict[str, Any] | None) -> dict[str, str]:
    """FCM data payloads only carry string values."""
    return {str(k): str(v) for k, v in (data or {}).items() if v is not None}


def build_multicast_message(
    tokens: list[str],
    title: str,
    body: str,
    data: dict[str, Any] | None = None,
    image_url: str | None = None,
) -> messaging.MulticastMessage:
    """Build a multicast message targeting web clients."""
    return messaging.MulticastMessage(
        notification=messaging.Notification(
            title=title,
            body=body,
            image=image_url,
        ),
        data=stringify_data(data),
        tokens=tokens,
        webpush=messaging.WebpushConfig(
            notification=messaging.WebpushNotification(
                icon=DEFAULT_ICON,
                badge=DEFAULT_ICON,
            ),
        ),
    )


async def send_multicast(
    tokens: list[str],
    title: str,
    body: str,
    data: dict[str, Any] | None = None,
    image_url: str | None = None,
) -> MulticastResult:
    """
    Send one notification to several devices.

    Args:
        tokens: FCM registration tokens
        title: Notification title
        body: Notification body
        data: Optional data payload
        image_url: Optional image shown with the notification

    Returns:
        Per-token results, in the order of ``tokens``

    Raises:
        firebase_admin.exceptions.FirebaseError: If the whole batch is rejected
    """
    if not tokens:
        logger.warning("no_tokens_provided", title=title)
        return MulticastResult()

    message = build_multicast_message(tokens, title, body, data, image_url)
    response = await asyncio.to_thread(messaging.send_each_for_multicast, message)

    results = []
    for token, resp in zip(tokens, response.responses, strict=False):
        if resp.success:
            results.append(TokenSendResult(token=token, success=True, message_id=resp.message_id))
        else:
            exc = resp.exception
            results.append(
                TokenSendResult(
                    token=token,
                    success=False,
                    error_code=push_error_code(exc),
                    error_message=str(exc) if exc else None,
                )
            )

    result = MulticastResult(results)
    logger.info(
        "push_multicast_sent",
        title=title,
        token_count=len(tokens),
        success_count=result.success_count,
        failure_count=result.failure_count,
    )
    return result


async def send_to_token(
    token: str,
    title: str,
    body: str,
    data: dict[str, Any] | None = None,
) -> TokenSendResult:
    """Send to a single token, capturing provider errors in the result."""
    message = messaging.Message(
        notification=messaging.Notification(title=title, body=body),
        data=stringify_data(data),
        token=token,
    )
    try:
        message_id = await asyncio.to_thread(messaging.send, message)
    except firebase_exceptions.FirebaseError as e:
        return TokenSendResult(
            token=token,
            success=False,
            error_code=push_error_code(e),
            error_message=str(e),
        )
    return TokenSendResult(token=token, success=True, message_id=message_id)


def ensure_push_available() -> None:
    """
    Fail fast when Firebase messaging cannot be used.

    Raises:
        PushProviderUnavailableException: If the Firebase app is not initialized
    """
    if not is_firebase_initialized():
        raise PushProviderUnavailableException("Firebase Admin SDK is not initialized")
