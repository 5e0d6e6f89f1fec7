"""Script to initialize the database."""

import asyncio

from sqlalchemy import text

from app.database import engine
from app.models import metadata


async def init_db() -> None:
    """Create every calendar table that does not exist yet."""
    async with engine.begin() as conn:
        if conn.dialect.name == "postgresql":
            await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "pgcrypto"'))

        await conn.run_sync(metadata.create_all)

        print("✓ Database initialized successfully!")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init_db())
