"""Role model for calendar editing."""

from enum import Enum
from typing import Any
from uuid import UUID


class Role(str, Enum):
    """User role as stored in ``user_roles.role``."""

    MEMBER = "Member"
    ADMIN = "Admin"
    SUPER_ADMIN = "Super Admin"

    @classmethod
    def parse(cls, value: str | None) -> "Role":
        """Map a stored role to the enum; unknown or missing roles are members."""
        try:
            return cls(value)
        except ValueError:
            return cls.MEMBER


def can_create_event(role: Role) -> bool:
    """Admins and Super Admins can add events."""
    return role in (Role.ADMIN, Role.SUPER_ADMIN)


def can_edit_event(role: Role, user_id: UUID | str, event: dict[str, Any]) -> bool:
    """
    Check whether a user may edit an event.

    Super Admins edit anything, Admins only the events they created, Members
    nothing.
    """
    if role == Role.SUPER_ADMIN:
        return True
    if role == Role.ADMIN:
        return str(event.get("created_by")) == str(user_id)
    return False


def can_delete_event(role: Role) -> bool:
    """Only Super Admins delete events."""
    return role == Role.SUPER_ADMIN


def can_manage_roles(role: Role) -> bool:
    """Only Super Admins assign roles."""
    return role == Role.SUPER_ADMIN
