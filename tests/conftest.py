import fnmatch
import os
from collections.abc import AsyncGenerator
from datetime import timedelta
from unittest.mock import MagicMock, patch
from uuid import uuid4

# Settings are read at import time; tests never need a real server database
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key")

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from firebase_admin import messaging
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

load_dotenv()

from app.core.redis_client import CacheManager
from app.core.security import create_access_token
from app.database import enable_sqlite_foreign_keys, engine_options, get_db, to_async_url
from app.dependencies import get_cache_manager
from app.main import app
from app.models import metadata
from app.models.users import user_roles, users

# Use TEST_DATABASE_URL to run against PostgreSQL; defaults to in-memory SQLite
TEST_DATABASE_URL = to_async_url(os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:"))


class FakeRedis:
    """In-memory stand-in for the few Redis commands CacheManager uses."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value):
        self.store[key] = value
        return True

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    def exists(self, key):
        return int(key in self.store)

    def keys(self, pattern):
        return [key for key in self.store if fnmatch.fnmatch(key, pattern)]

    def ping(self):
        return True


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session on freshly created tables."""
    # One engine per test keeps connections on the test's event loop
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        **engine_options(TEST_DATABASE_URL),
    )
    if TEST_DATABASE_URL.startswith("sqlite"):
        enable_sqlite_foreign_keys(test_engine)

    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache_manager(fake_redis: FakeRedis) -> CacheManager:
    return CacheManager(redis_client=fake_redis)


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    cache_manager: CacheManager,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache_manager] = lambda: cache_manager

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def create_user(
    db: AsyncSession,
    role: str | None = None,
    email: str | None = None,
    is_active: bool = True,
) -> dict:
    """Insert a user, and its role row when a role is given."""
    user_id = uuid4()
    user_data = {
        "id": user_id,
        "firebase_uid": f"firebase_uid_{user_id}",
        "email": email or f"{user_id.hex[:8]}@example.com",
        "full_name": "Test User",
        "is_active": is_active,
    }
    await db.execute(insert(users).values(**user_data))
    if role:
        await db.execute(insert(user_roles).values(user_id=user_id, role=role))
    await db.commit()
    return {**user_data, "role": role or "Member"}


def headers_for(user: dict) -> dict:
    """Bearer headers for a user."""
    token = create_access_token(
        data={"sub": str(user["id"])},
        expires_delta=timedelta(minutes=30),
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def test_user(db_session):
    """A Member."""
    return await create_user(db_session, email="member@example.com")


@pytest.fixture
async def admin_user(db_session):
    return await create_user(db_session, role="Admin", email="admin@example.com")


@pytest.fixture
async def super_admin_user(db_session):
    return await create_user(db_session, role="Super Admin", email="owner@example.com")


@pytest.fixture
def auth_headers(test_user) -> dict:
    return headers_for(test_user)


@pytest.fixture
def admin_headers(admin_user) -> dict:
    return headers_for(admin_user)


@pytest.fixture
def super_admin_headers(super_admin_user) -> dict:
    return headers_for(super_admin_user)


@pytest.fixture
def firebase_app(monkeypatch):
    """Pretend the Firebase Admin SDK is initialized."""
    firebase = MagicMock(project_id="test-project")
    monkeypatch.setattr("app.core.firebase._firebase_app", firebase)
    return firebase


def batch_response(tokens: list[str], dead: set[str] | frozenset[str] = frozenset()) -> MagicMock:
    """Multicast response where every token succeeds except the ``dead`` ones."""
    responses = []
    for i, token in enumerate(tokens):
        if token in dead:
            responses.append(
                MagicMock(
                    success=False,
                    message_id=None,
                    exception=messaging.UnregisteredError("Requested entity was not found."),
                )
            )
        else:
            responses.append(
                MagicMock(success=True, message_id=f"projects/test/messages/{i}", exception=None)
            )
    return MagicMock(responses=responses)


@pytest.fixture
def dead_tokens() -> set[str]:
    """Tokens the fake provider reports as unregistered; tests add to it."""
    return set()


@pytest.fixture
def fcm_send(firebase_app, dead_tokens):
    """Patch the multicast call; returns the mock so tests can inspect the messages."""
    with patch("app.core.push.messaging.send_each_for_multicast") as send:
        send.side_effect = lambda message: batch_response(message.tokens, dead_tokens)
        yield send


@pytest.fixture
def make_user(db_session):
    """Factory for extra users: ``await make_user(role="Admin")``."""

    async def _make(**kwargs) -> dict:
        return await create_user(db_session, **kwargs)

    return _make


@pytest.fixture
def make_headers():
    return headers_for
