"""User endpoints."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from app.dependencies import CacheManagerDep, CurrentUser, DatabaseSession, SuperAdmin
from app.schemas.users import RoleUpdate, UserResponse
from app.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(current_user: CurrentUser):
    """Get current user's profile and role."""
    return UserResponse.model_validate(current_user)


@router.put("/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: UUID,
    role_data: RoleUpdate,
    admin: SuperAdmin,
    cache_manager: CacheManagerDep,
    db: DatabaseSession,
):
    """
    Assign a role to a user (Super Admin only).

    Args:
        user_id: Target user
        role_data: New role
        admin: Authenticated Super Admin
        cache_manager: Role cache to invalidate
        db: Database session

    Returns:
        The user with its new role
    """
    user_service = UserService(cache_manager)
    user = await user_service.get_user_by_id(db, user_id)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    user["role"] = await user_service.set_role(db, user_id, role_data.role)
    return UserResponse.model_validate(user)
