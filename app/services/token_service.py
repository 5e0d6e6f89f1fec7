"""Push token registry and web-push subscriptions."""

from collections import defaultdict
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.push import token_preview
from app.database import dialect_insert
from app.models.push_tokens import fcm_tokens, push_subscriptions

logger = structlog.get_logger(__name__)


class TokenService:
    """Service for FCM token rows and push subscriptions."""

    @staticmethod
    async def register_token(
        db: AsyncSession,
        user_id: UUID,
        token: str,
        device_info: str | None = None,
    ) -> dict[str, Any]:
        """
        Register the current device token for a user.

        A user keeps a single token row: an existing row is updated in place
        and any extra rows are dropped, so re-registering an unchanged token
        never adds a row.

        Args:
            db: Database session
            user_id: Token owner
            token: FCM registration token
            device_info: Optional device descriptor

        Returns:
            The stored token row
        """
        result = await db.execute(
            select(fcm_tokens.c.id, fcm_tokens.c.token)
            .where(fcm_tokens.c.user_id == user_id)
            .order_by(fcm_tokens.c.updated_at.desc())
        )
        rows = result.all()

        if rows:
            # Prefer the row already holding this token
            keep = next((r for r in rows if r.token == token), rows[0])
            extra_ids = [r.id for r in rows if r.id != keep.id]
            if extra_ids:
                await db.execute(delete(fcm_tokens).where(fcm_tokens.c.id.in_(extra_ids)))

            query = (
                update(fcm_tokens)
                .where(fcm_tokens.c.id == keep.id)
                .values(token=token, device_info=device_info, updated_at=datetime.now(UTC))
                .returning(fcm_tokens)
            )
            action = "updated" if keep.token != token else "refreshed"
        else:
            stmt = dialect_insert(db, fcm_tokens).values(
                user_id=user_id,
                token=token,
                device_info=device_info,
            )
            query = stmt.on_conflict_do_update(
                index_elements=[fcm_tokens.c.user_id, fcm_tokens.c.token],
                set_={"device_info": stmt.excluded.device_info, "updated_at": datetime.now(UTC)},
            ).returning(fcm_tokens)
            action = "inserted"

        result = await db.execute(query)
        await db.commit()
        row = dict(result.mappings().one())

        logger.info(
            "fcm_token_registered",
            user_id=str(user_id),
            action=action,
            token_preview=token_preview(token),
        )
        return row

    @staticmethod
    async def remove_user_tokens(db: AsyncSession, user_id: UUID) -> int:
        """Delete every token row of a user (sign-out / cleanup)."""
        result = await db.execute(delete(fcm_tokens).where(fcm_tokens.c.user_id == user_id))
        await db.commit()
        removed = result.rowcount  # type: ignore[attr-defined]
        logger.info("user_tokens_removed", user_id=str(user_id), removed=removed)
        return removed

    @staticmethod
    async def remove_tokens(db: AsyncSession, tokens: Iterable[str]) -> int:
        """
        Delete token rows by value.

        Used to prune tokens the messaging provider reported as dead.
        """
        tokens = list(tokens)
        if not tokens:
            return 0

        result = await db.execute(delete(fcm_tokens).where(fcm_tokens.c.token.in_(tokens)))
        await db.commit()
        removed = result.rowcount  # type: ignore[attr-defined]
        logger.info(
            "invalid_tokens_removed",
            removed=removed,
            tokens=[token_preview(t) for t in tokens],
        )
        return removed

    @staticmethod
    async def remove_all_tokens(db: AsyncSession) -> tuple[int, int]:
        """
        Delete every token row.

        Returns:
            Tuple of (rows removed, distinct users affected)
        """
        affected = await db.scalar(select(func.count(func.distinct(fcm_tokens.c.user_id))))
        result = await db.execute(delete(fcm_tokens))
        await db.commit()
        removed = result.rowcount  # type: ignore[attr-defined]
        logger.warning("all_tokens_removed", removed=removed, affected_users=affected)
        return removed, affected or 0

    @staticmethod
    async def list_tokens(
        db: AsyncSession,
        user_ids: Iterable[UUID] | None = None,
    ) -> list[dict[str, Any]]:
        """Token rows, optionally restricted to some users."""
        query = select(fcm_tokens).order_by(fcm_tokens.c.user_id, fcm_tokens.c.created_at)
        if user_ids is not None:
            query = query.where(fcm_tokens.c.user_id.in_(list(user_ids)))
        result = await db.execute(query)
        return [dict(row) for row in result.mappings().all()]

    @staticmethod
    def group_by_user(rows: Iterable[dict[str, Any]]) -> dict[UUID, list[str]]:
        """Map each user to its distinct tokens, keeping row order."""
        grouped: dict[UUID, list[str]] = defaultdict(list)
        for row in rows:
            if row["token"] not in grouped[row["user_id"]]:
                grouped[row["user_id"]].append(row["token"])
        return dict(grouped)

    @staticmethod
    async def upsert_subscription(
        db: AsyncSession,
        user_id: UUID,
        endpoint: str,
        p256dh: str,
        auth: str,
        user_agent: str | None = None,
    ) -> dict[str, Any]:
        """Store a web-push subscription, replacing keys for a known endpoint."""
        stmt = dialect_insert(db, push_subscriptions).values(
            user_id=user_id,
            endpoint=endpoint,
            p256dh=p256dh,
            auth=auth,
            user_agent=user_agent,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[push_subscriptions.c.user_id, push_subscriptions.c.endpoint],
            set_={
                "p256dh": stmt.excluded.p256dh,
                "auth": stmt.excluded.auth,
                "user_agent": stmt.excluded.user_agent,
            },
        ).returning(push_subscriptions)

        result = await db.execute(stmt)
        await db.commit()
        logger.info("push_subscription_saved", user_id=str(user_id))
        return dict(result.mappings().one())

    @staticmethod
    async def delete_subscription(db: AsyncSession, user_id: UUID, endpoint: str) -> bool:
        """Remove a web-push subscription."""
        result = await db.execute(
            delete(push_subscriptions).where(
                push_subscriptions.c.user_id == user_id,
                push_subscriptions.c.endpoint == endpoint,
            )
        )
        await db.commit()
        return result.rowcount > 0  # type: ignore[attr-defined]
