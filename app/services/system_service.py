"""Environment self-check for operators."""

from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.core.firebase import firebase_project_id, is_firebase_initialized
from app.core.redis_client import check_redis_connection
from app.models.push_tokens import fcm_tokens

logger = structlog.get_logger(__name__)


def environment_flags(config: Settings) -> dict[str, bool]:
    """Which settings are present; values are never reported."""
    return {
        "database_url": bool(config.database_url),
        "jwt_secret_key": bool(config.jwt_secret_key),
        "firebase_credentials": bool(
            config.firebase_config_json or config.firebase_credentials_path
        ),
        "cron_secret": bool(config.cron_secret),
        "push_admin_secret": bool(config.push_admin_secret),
    }


async def setup_check(db: AsyncSession, config: Settings) -> dict[str, Any]:
    """
    Check configuration, Firebase, database and Redis.

    Args:
        db: Database session
        config: Settings to inspect

    Returns:
        Component results and an overall ``ready`` flag
    """
    firebase_ok = is_firebase_initialized()
    firebase = {
        "ok": firebase_ok,
        "detail": f"project {firebase_project_id()}" if firebase_ok else "not initialized",
    }

    try:
        await db.execute(select(fcm_tokens.c.id).limit(1))
        database = {"ok": True, "detail": "fcm_tokens reachable"}
    except Exception as e:
        logger.error("setup_check_database_failed", error=str(e))
        database = {"ok": False, "detail": str(e)}

    redis_ok = await check_redis_connection()
    redis = {"ok": redis_ok, "detail": None if redis_ok else "ping failed"}

    flags = environment_flags(config)
    return {
        "timestamp": datetime.now(UTC),
        "environment": flags,
        "firebase": firebase,
        "database": database,
        "redis": redis,
        # Redis only backs caches, so it does not gate readiness
        "ready": firebase_ok and database["ok"],
    }
