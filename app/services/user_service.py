"""User service for business logic."""

from datetime import UTC, datetime
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.permissions import Role
from app.core.redis_client import CacheManager
from app.database import dialect_insert
from app.models.users import user_roles, users
from app.schemas.users import UserCreate

logger = structlog.get_logger(__name__)


class UserService:
    """Service for user and role operations."""

    # Cache TTL in seconds (10 minutes for role lookups)
    ROLE_CACHE_TTL = 600

    def __init__(self, cache_manager: CacheManager | None = None):
        """Initialize service with optional cache manager."""
        self.cache = cache_manager

    @staticmethod
    def _role_cache_key(user_id: UUID) -> str:
        return f"user:{user_id}:role"

    async def create_user(self, db: AsyncSession, user_data: UserCreate) -> dict:
        """Create a new user."""
        query = (
            users.insert()
            .values(
                firebase_uid=user_data.firebase_uid,
                email=user_data.email,
                full_name=user_data.full_name,
                photo_url=user_data.photo_url,
                last_login_at=datetime.now(UTC),
            )
            .returning(users)
        )

        result = await db.execute(query)
        await db.commit()
        user = result.mappings().first()

        if not user:
            raise ValueError("Failed to create user")

        logger.info("user_created", user_id=str(user["id"]))
        return dict(user)

    async def get_user_by_id(self, db: AsyncSession, user_id: UUID) -> dict | None:
        """Get user by internal ID."""
        result = await db.execute(select(users).where(users.c.id == user_id))
        user = result.mappings().first()
        return dict(user) if user else None

    async def get_user_by_firebase_uid(self, db: AsyncSession, firebase_uid: str) -> dict | None:
        """Get user by Firebase UID."""
        result = await db.execute(select(users).where(users.c.firebase_uid == firebase_uid))
        user = result.mappings().first()
        return dict(user) if user else None

    async def get_or_create_user(self, db: AsyncSession, user_data: UserCreate) -> dict:
        """Get the user for a Firebase identity, creating it on first login."""
        user = await self.get_user_by_firebase_uid(db, user_data.firebase_uid)

        if user:
            await self.update_last_login(db, user["id"])
            return user

        return await self.create_user(db, user_data)

    async def update_last_login(self, db: AsyncSession, user_id: UUID) -> None:
        """Update user's last login timestamp."""
        query = update(users).where(users.c.id == user_id).values(last_login_at=datetime.now(UTC))
        await db.execute(query)
        await db.commit()

    async def get_role(self, db: AsyncSession, user_id: UUID) -> Role:
        """
        Get a user's role, defaulting to Member.

        Args:
            db: Database session
            user_id: User identifier

        Returns:
            Stored role, or ``Role.MEMBER`` when the user has no role row
        """
        if self.cache:
            cached = self.cache.get_json(self._role_cache_key(user_id))
            if cached:
                return Role.parse(cached)

        result = await db.execute(select(user_roles.c.role).where(user_roles.c.user_id == user_id))
        role = Role.parse(result.scalar_one_or_none())

        if self.cache:
            self.cache.set_json(self._role_cache_key(user_id), role.value, ttl=self.ROLE_CACHE_TTL)

        return role

    async def set_role(self, db: AsyncSession, user_id: UUID, role: Role) -> Role:
        """Assign a role, replacing any existing one."""
        stmt = dialect_insert(db, user_roles).values(user_id=user_id, role=role.value)
        stmt = stmt.on_conflict_do_update(
            index_elements=[user_roles.c.user_id],
            set_={"role": stmt.excluded.role},
        )
        await db.execute(stmt)
        await db.commit()

        if self.cache:
            self.cache.delete(self._role_cache_key(user_id))

        logger.info("user_role_updated", user_id=str(user_id), role=role.value)
        return role
