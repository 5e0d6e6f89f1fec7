"""User schemas for request/response validation."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from app.core.permissions import Role


class UserBase(BaseModel):
    """Base user schema with common fields."""

    email: EmailStr
    full_name: str | None = None
    photo_url: str | None = None


class UserCreate(UserBase):
    """Schema for creating a user from a verified Firebase identity."""

    firebase_uid: str = Field(..., description="Firebase user ID")


class UserResponse(UserBase):
    """User schema for API responses."""

    id: UUID
    role: Role = Role.MEMBER
    is_active: bool
    created_at: datetime | None = None
    last_login_at: datetime | None = None

    model_config = {"from_attributes": True}


class RoleUpdate(BaseModel):
    """Role assignment request."""

    role: Role = Field(..., description="Member, Admin or Super Admin")
