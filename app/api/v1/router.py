"""API v1 router configuration."""

from fastapi import APIRouter

from app.api.v1.endpoints import (
    auth,
    broadcast,
    cron,
    events,
    health,
    notifications,
    system,
    users,
)

api_router = APIRouter()

# Include routers
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(users.router)
api_router.include_router(events.router)
api_router.include_router(notifications.router)
api_router.include_router(broadcast.router)
api_router.include_router(cron.router)
api_router.include_router(system.router)
