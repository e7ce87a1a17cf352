"""Helpers shared by tests: app-level arrange steps and a recording publisher."""
from datetime import UTC, datetime, timedelta
from pathlib import Path

from httpx import AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import create_async_engine

from core.config import Settings
from core.context import ServiceContext
from models.base import Base
from models.user import Role, User
from services import user_service
from services.events import OutboundEvent

TEST_JWT_SECRET = "test-secret-that-is-at-least-32-characters-long"
DEFAULT_PASSWORD = "password123"


class RecordingEventPublisher:
    """Keeps published events in memory so tests can assert side effects."""

    def __init__(self) -> None:
        self.events: list[OutboundEvent] = []

    async def publish(self, event: OutboundEvent) -> bool:
        """Record the event."""
        self.events.append(event)
        return True

    def names(self) -> list[str]:
        """Names of recorded events in publish order."""
        return [e.name for e in self.events]

    def last(self, name: str) -> OutboundEvent:
        """Most recent event with this name."""
        return next(e for e in reversed(self.events) if e.name == name)


def sqlite_url(path: Path) -> str:
    """aiosqlite URL for a database file."""
    return f"sqlite+aiosqlite:///{path}"


async def create_schema(url: str) -> None:
    """
    Create all tables in a SQLite file and switch it to WAL.

    WAL lets a read connection and a write connection use the same file at
    once, which the dual-pool code does within a single request.
    """
    engine = create_async_engine(url)
    async with engine.connect() as conn:
        await conn.exec_driver_sql("PRAGMA journal_mode=WAL")
        await conn.run_sync(Base.metadata.create_all)
        await conn.commit()
    await engine.dispose()


def make_settings(database_url: str, **overrides: object) -> Settings:
    """Settings for tests: fast bcrypt, no connect retries, rate limiting off."""
    values: dict[str, object] = {
        "_env_file": None,
        "database_url": database_url,
        "jwt_secret": TEST_JWT_SECRET,
        "bcrypt_rounds": 4,
        "db_connect_retries": 1,
        "db_connect_retry_delay": 0,
        "rate_limit_enabled": False,
        "app_url": "https://app.test",
    }
    values.update(overrides)
    return Settings(**values)


async def register(
    client: AsyncClient,
    email: str = "user@example.com",
    password: str = DEFAULT_PASSWORD,
    name: str = "Test User",
) -> dict:
    """Register through the API and return the response body."""
    response = await client.post(
        "/auth/register",
        json={"email": email, "password": password, "name": name},
    )
    assert response.status_code == 201, response.text
    return response.json()


def bearer(access_token: str) -> dict[str, str]:
    """Authorization header for an access token."""
    return {"Authorization": f"Bearer {access_token}"}


async def promote_to_admin(context: ServiceContext, email: str) -> None:
    """Give an existing user the admin role."""
    async with context.pools.write_session() as session:
        await session.execute(update(User).where(User.email == email).values(role=Role.ADMIN))
        await session.commit()


async def get_user_row(context: ServiceContext, email: str) -> User:
    """Load a user fresh from the primary."""
    async with context.pools.write_session() as session:
        user = await user_service.get_by_email(session, email)
        assert user is not None
        return user


async def expire_token(context: ServiceContext, email: str, column: str) -> None:
    """Backdate one of a user's token expiry columns into the past."""
    async with context.pools.write_session() as session:
        await session.execute(
            update(User)
            .where(User.email == email)
            .values({column: datetime.now(UTC) - timedelta(minutes=1)}),
        )
        await session.commit()
