"""FastAPI dependencies."""

import hmac
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.permissions import Role
from app.core.redis_client import CacheManager, get_redis_client
from app.core.security import decode_access_token
from app.database import get_db
from app.services.user_service import UserService

# Security
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_cache_manager() -> CacheManager:
    """Cache manager over the shared Redis client."""
    return CacheManager(get_redis_client())


def _user_id_from_token(token: str) -> UUID:
    payload = decode_access_token(token)
    if payload is None:
        raise _unauthorized()

    user_id_str = payload.get("sub")
    if not isinstance(user_id_str, str):
        raise _unauthorized()

    try:
        return UUID(user_id_str)
    except ValueError:
        raise _unauthorized("Invalid user ID format")


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> UUID:
    """
    Extract and validate user ID from JWT token.

    Raises:
        HTTPException: If token is invalid or expired
    """
    return _user_id_from_token(credentials.credentials)


async def get_current_user(
    user_id: Annotated[UUID, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    cache_manager: Annotated[CacheManager, Depends(get_cache_manager)],
) -> dict:
    """
    Load the current user with its role.

    Raises:
        HTTPException: If the user is missing or deactivated
    """
    user_service = UserService(cache_manager)
    user = await user_service.get_user_by_id(db, user_id)

    if not user:
        raise _unauthorized("User not found")

    if not user["is_active"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    user["role"] = await user_service.get_role(db, user_id)
    return user


async def require_super_admin(
    user: Annotated[dict, Depends(get_current_user)],
) -> dict:
    """Current user, provided it is a Super Admin."""
    if user["role"] != Role.SUPER_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Super Admin role required",
        )
    return user


async def verify_cron_secret(
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """
    Check ``Authorization: Bearer <CRON_SECRET>`` when a cron secret is set.

    Raises:
        HTTPException: If the secret is configured and does not match
    """
    secret = settings.cron_secret
    if not secret:
        return
    if not authorization or not hmac.compare_digest(authorization, f"Bearer {secret}"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


async def require_push_admin(
    db: Annotated[AsyncSession, Depends(get_db)],
    cache_manager: Annotated[CacheManager, Depends(get_cache_manager)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(optional_security)],
    x_admin_secret: Annotated[str | None, Header()] = None,
) -> None:
    """
    Guard operator broadcast endpoints.

    Accepts a matching ``X-Admin-Secret`` header, otherwise requires a
    Super Admin bearer token.

    Raises:
        HTTPException: If neither credential is valid
    """
    secret = settings.push_admin_secret
    if secret and x_admin_secret and hmac.compare_digest(x_admin_secret, secret):
        return

    if credentials is None:
        raise _unauthorized("Admin secret or Super Admin token required")

    user_id = _user_id_from_token(credentials.credentials)
    role = await UserService(cache_manager).get_role(db, user_id)
    if role != Role.SUPER_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Super Admin role required",
        )


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CacheManagerDep = Annotated[CacheManager, Depends(get_cache_manager)]
CurrentUserId = Annotated[UUID, Depends(get_current_user_id)]
CurrentUser = Annotated[dict, Depends(get_current_user)]
SuperAdmin = Annotated[dict, Depends(require_super_admin)]
