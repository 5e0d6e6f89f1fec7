"""Environment self-check endpoint."""

from fastapi import APIRouter, Depends

from app.config import settings
from app.dependencies import DatabaseSession, require_push_admin
from app.schemas.system import SetupCheckResponse
from app.services.system_service import setup_check

router = APIRouter(prefix="/system", tags=["System"])


@router.get(
    "/setup-check",
    response_model=SetupCheckResponse,
    dependencies=[Depends(require_push_admin)],
    summary="Check configuration and dependencies",
)
async def get_setup_check(db: DatabaseSession):
    """Report which settings are present and whether Firebase, the database and Redis work."""
    return await setup_check(db, settings)
