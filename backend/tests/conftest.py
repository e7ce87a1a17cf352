"""Pytest fixtures for testing."""
import os

# Settings are validated at import time by api.main; these must exist first.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret-that-is-at-least-32-characters-long")

from collections.abc import AsyncGenerator  # noqa: E402
from pathlib import Path  # noqa: E402

import fakeredis  # noqa: E402
import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from core.config import Settings  # noqa: E402
from core.context import ServiceContext, build_context  # noqa: E402
from core.redis import RedisClient  # noqa: E402
from tests.helpers import (  # noqa: E402
    RecordingEventPublisher,
    create_schema,
    make_settings,
    sqlite_url,
)


@pytest.fixture
async def database_url(tmp_path: Path) -> str:
    """A fresh primary database file with the schema applied."""
    url = sqlite_url(tmp_path / "primary.db")
    await create_schema(url)
    return url


@pytest.fixture
def settings(database_url: str) -> Settings:
    """Test settings pointing at the per-test database."""
    return make_settings(database_url)


@pytest.fixture
def fake_redis() -> fakeredis.FakeAsyncRedis:
    """In-memory Redis with Lua support."""
    return fakeredis.FakeAsyncRedis()


@pytest.fixture
async def redis_client(fake_redis: fakeredis.FakeAsyncRedis) -> AsyncGenerator[RedisClient]:
    """RedisClient connected to the in-memory server."""
    client = RedisClient("redis://fake")
    await client.connect(fake_redis)
    yield client
    await client.close()


@pytest.fixture
def events() -> RecordingEventPublisher:
    """Publisher capturing outbound events."""
    return RecordingEventPublisher()


@pytest.fixture
async def context(
    settings: Settings,
    fake_redis: fakeredis.FakeAsyncRedis,
    events: RecordingEventPublisher,
) -> AsyncGenerator[ServiceContext]:
    """Service context on SQLite and fake Redis."""
    ctx = await build_context(settings, redis_client=fake_redis, events=events)
    yield ctx
    await ctx.close()


@pytest.fixture
def app(context: ServiceContext) -> FastAPI:
    """Application with the test context attached (lifespan is not run)."""
    from api.main import create_app

    application = create_app(context.settings)
    application.state.context = context
    return application


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """HTTP client talking to the app in-process."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client


@pytest.fixture
async def db_session(context: ServiceContext) -> AsyncGenerator[AsyncSession]:
    """Write session for arranging and inspecting data directly."""
    async with context.pools.write_session() as session:
        yield session
