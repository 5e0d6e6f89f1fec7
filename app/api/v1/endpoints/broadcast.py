"""Operator broadcast endpoints."""

from fastapi import APIRouter, Depends

from app.dependencies import DatabaseSession, require_push_admin
from app.schemas.broadcast import (
    BroadcastRequest,
    BroadcastResponse,
    CleanupResponse,
    DiagnoseRequest,
    DiagnoseResponse,
    EndpointUsage,
    SendRequest,
    SendResponse,
)
from app.services.broadcast_service import BroadcastService

router = APIRouter(prefix="/notifications", tags=["Broadcast"])


@router.post(
    "/broadcast",
    response_model=BroadcastResponse,
    dependencies=[Depends(require_push_admin)],
    summary="Broadcast upcoming events to all users",
)
async def broadcast(db: DatabaseSession, request: BroadcastRequest | None = None):
    """
    Send a summary of upcoming events to every registered device.

    Re-invoking resends: there is no idempotency key.

    Args:
        db: Database session
        request: Window and optional title/body overrides

    Returns:
        Counters, per-user results and the events included
    """
    request = request or BroadcastRequest()
    return await BroadcastService.broadcast_upcoming(
        db,
        hours_ahead=request.hours_ahead,
        test_mode=request.test_mode,
        custom_title=request.custom_title,
        custom_body=request.custom_body,
    )


@router.get("/broadcast", response_model=EndpointUsage, summary="Broadcast usage")
async def broadcast_usage() -> EndpointUsage:
    return EndpointUsage(
        endpoint="/notifications/broadcast",
        method="POST",
        description="Send notifications about upcoming events to all users with FCM tokens",
        body={
            "hours_ahead": "number - Hours ahead to check (default 24)",
            "test_mode": "boolean - Tag the notification as a test",
            "custom_title": "string - Custom notification title",
            "custom_body": "string - Custom notification body",
        },
    )


@router.post(
    "/send",
    response_model=SendResponse,
    dependencies=[Depends(require_push_admin)],
    summary="Send a notification to specific users",
)
async def send_to_users(request: SendRequest, db: DatabaseSession):
    """
    Multicast one notification to every device of the given users.

    Raises:
        NotFoundException: If none of the users has a token
    """
    return await BroadcastService.send_to_users(
        db,
        request.user_ids,
        request.title,
        request.body,
        request.data,
        request.image_url,
    )


@router.post(
    "/diagnose",
    response_model=DiagnoseResponse,
    dependencies=[Depends(require_push_admin)],
    summary="Test each token of a user",
)
async def diagnose(request: DiagnoseRequest, db: DatabaseSession):
    """Send a test message to each token individually; dead tokens are deleted."""
    return await BroadcastService.diagnose_user(db, request.user_id)


@router.get("/diagnose", response_model=EndpointUsage, summary="Diagnose usage")
async def diagnose_usage() -> EndpointUsage:
    return EndpointUsage(
        endpoint="/notifications/diagnose",
        method="POST",
        description="Tests each FCM token individually to identify which ones are working",
        body={"user_id": "uuid - User whose tokens are tested"},
    )


@router.post(
    "/cleanup-tokens",
    response_model=CleanupResponse,
    dependencies=[Depends(require_push_admin)],
    summary="Remove every stored token",
)
async def cleanup_tokens(db: DatabaseSession):
    """Delete all FCM tokens; clients re-register on their next visit."""
    return await BroadcastService.cleanup_all_tokens(db)


@router.get("/cleanup-tokens", response_model=EndpointUsage, summary="Cleanup usage")
async def cleanup_usage() -> EndpointUsage:
    return EndpointUsage(
        endpoint="/notifications/cleanup-tokens",
        method="POST",
        description="Removes all FCM tokens so every user has to re-register",
    )
