"""Authentication service for Firebase and JWT."""

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import UnauthorizedException
from app.core.firebase import verify_firebase_token
from app.core.redis_client import CacheManager
from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
)
from app.schemas.auth import Token
from app.schemas.users import UserCreate
from app.services.user_service import UserService

# Revoked refresh tokens stay blacklisted for their whole lifetime
REVOCATION_TTL_SECONDS = 86400 * 30


class AuthService:
    """Exchanges Firebase identities for API tokens."""

    def __init__(self, cache_manager: CacheManager):
        """Initialize auth service with cache manager."""
        self.cache = cache_manager

    async def verify_firebase_id_token(self, id_token: str) -> dict:
        """
        Verify Firebase ID token and extract user information.

        Args:
            id_token: Firebase ID token from the web client

        Returns:
            Decoded token with user claims

        Raises:
            UnauthorizedException: If token verification fails
        """
        try:
            return await verify_firebase_token(id_token)
        except ValueError as e:
            raise UnauthorizedException(str(e)) from e

    async def handle_firebase_login(
        self, firebase_token_data: dict, db: AsyncSession
    ) -> tuple[dict, Token]:
        """
        Get or create the user behind a Firebase token and issue JWTs.

        Args:
            firebase_token_data: Decoded Firebase token with user info
            db: Database session

        Returns:
            Tuple of (user dict including its role, token pair)
        """
        email = firebase_token_data.get("email")
        if not email:
            raise UnauthorizedException("Email is required from Firebase token")

        user_data = UserCreate(
            firebase_uid=firebase_token_data["uid"],
            email=email,
            full_name=firebase_token_data.get("name"),
            photo_url=firebase_token_data.get("picture"),
        )

        user_service = UserService(self.cache)
        user = await user_service.get_or_create_user(db, user_data)
        if not user["is_active"]:
            raise UnauthorizedException("User account is deactivated")

        user["role"] = await user_service.get_role(db, user["id"])
        return user, self.create_tokens(str(user["id"]))

    def create_tokens(self, user_id: str) -> Token:
        """Create an access/refresh token pair for a user."""
        return Token(
            access_token=create_access_token(data={"sub": user_id}),
            refresh_token=create_refresh_token(data={"sub": user_id}),
            token_type="bearer",
        )

    def refresh_access_token(self, refresh_token: str) -> Token:
        """
        Create new token pair from a refresh token.

        Raises:
            UnauthorizedException: If the refresh token is invalid or revoked
        """
        payload = decode_refresh_token(refresh_token)
        if payload is None or payload.get("sub") is None:
            raise UnauthorizedException("Invalid refresh token")

        if self.cache.is_blacklisted(refresh_token):
            raise UnauthorizedException("Token has been revoked")

        return self.create_tokens(payload["sub"])

    def revoke_token(self, token: str, ttl: int = REVOCATION_TTL_SECONDS) -> None:
        """Blacklist a refresh token."""
        self.cache.blacklist_token(token, ttl)
