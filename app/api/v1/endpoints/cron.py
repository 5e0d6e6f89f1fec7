"""Cron-triggered reminder endpoints."""

from fastapi import APIRouter, Depends, Query

from app.dependencies import DatabaseSession, verify_cron_secret
from app.schemas.broadcast import CronResponse, DigestResponse
from app.services.broadcast_service import BroadcastService

router = APIRouter(
    prefix="/cron",
    tags=["Cron"],
    dependencies=[Depends(verify_cron_secret)],
)


@router.api_route(
    "/notifications",
    methods=["GET", "POST"],
    response_model=CronResponse,
    summary="Send event reminders at each user's reminder hour",
)
async def cron_notifications(
    db: DatabaseSession,
    force: bool = Query(False, description="Ignore reminder hours and notify everyone"),
):
    """
    Meant to run hourly. Each user with daily reminders enabled is notified
    about every event in the next 24 hours during their reminder hour.

    Requires ``Authorization: Bearer <CRON_SECRET>`` when a secret is set.
    """
    return await BroadcastService.run_event_reminders(db, force=force)


@router.post(
    "/daily-digest",
    response_model=DigestResponse,
    summary="Send each user a count of tomorrow's events",
)
async def cron_daily_digest(db: DatabaseSession):
    return await BroadcastService.run_daily_digest(db)
