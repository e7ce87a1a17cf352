"""
Dual connection pools: a replica-preferring read pool and a primary-only write pool.

Callers choose the pool at the call site. Anything that must observe its own
prior write (login reading a password hash, token lookups during rotation)
uses the write pool; listing and lookups that tolerate replica lag use the
read pool.
"""
import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from enum import StrEnum
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import QueuePool

from core.config import Settings
from services.exceptions import DependencyDegradedError

logger = logging.getLogger(__name__)


class PoolRole(StrEnum):
    """Which pool a handle belongs to."""

    READ = "read"
    WRITE = "write"


def _engine_options(settings: Settings, url: URL, role: PoolRole) -> dict[str, Any]:
    """
    Build create_async_engine kwargs for one pool role.

    Pool sizing and server settings only apply to PostgreSQL; SQLite (used by
    tests) has no server and keeps SQLAlchemy's default pool.
    """
    if url.get_backend_name() != "postgresql":
        return {}

    options: dict[str, Any] = {
        "pool_pre_ping": True,
        "pool_size": (
            settings.db_read_pool_size if role == PoolRole.READ else settings.db_write_pool_size
        ),
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout,
        "pool_recycle": settings.db_pool_recycle,
    }
    if url.get_driver_name() == "asyncpg":
        server_settings = {"application_name": f"{settings.app_name}-{role.value}-pool"}
        if role == PoolRole.READ:
            server_settings["default_transaction_read_only"] = "on"
        else:
            server_settings["synchronous_commit"] = settings.db_write_synchronous_commit
        options["connect_args"] = {
            "timeout": settings.db_connect_timeout,
            "command_timeout": settings.db_command_timeout,
            "server_settings": server_settings,
        }
    return options


class DatabasePools:
    """
    Owns the read and write engines for one process.

    Engines are created lazily on first use and then shared by every request;
    SQLAlchemy pools are safe for concurrent use, so no locking happens here.
    If an engine cannot be constructed, the pool degrades to a shared default
    engine on the primary URL: slower, but still correct because every query
    then goes to the primary.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._engines: dict[PoolRole, AsyncEngine] = {}
        self._factories: dict[PoolRole, async_sessionmaker[AsyncSession]] = {}
        self._fallback: set[PoolRole] = set()
        self._default_engine: AsyncEngine | None = None

    def _url_for(self, role: PoolRole) -> str:
        if role == PoolRole.READ:
            return self._settings.read_database_url
        return self._settings.database_url

    def _get_default_engine(self) -> AsyncEngine:
        """Plain engine on the primary, shared by every role that had to fall back."""
        if self._default_engine is None:
            self._default_engine = create_async_engine(self._settings.database_url)
        return self._default_engine

    def _engine(self, role: PoolRole) -> AsyncEngine:
        engine = self._engines.get(role)
        if engine is not None:
            return engine

        try:
            url = make_url(self._url_for(role))
            engine = create_async_engine(url, **_engine_options(self._settings, url, role))
        except Exception as e:  # noqa: BLE001 - any construction failure degrades
            logger.warning(
                "db_pool_degraded",
                extra={"pool": role.value, "error": str(e)},
            )
            engine = self._get_default_engine()
            self._fallback.add(role)
        else:
            logger.info(
                "db_pool_created",
                extra={"pool": role.value, "host": url.host, "database": url.database},
            )

        self._engines[role] = engine
        self._factories[role] = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        return engine

    def read_engine(self) -> AsyncEngine:
        """Engine for staleness-tolerant reads (replica preferred)."""
        return self._engine(PoolRole.READ)

    def write_engine(self) -> AsyncEngine:
        """Engine for writes and read-your-write lookups (primary only)."""
        return self._engine(PoolRole.WRITE)

    async def _degrade(self, role: PoolRole, reason: str) -> None:
        """Re-point a role at the default engine after it proved unusable."""
        logger.warning("db_pool_degraded", extra={"pool": role.value, "error": reason})
        previous = self._engines.get(role)
        engine = self._get_default_engine()
        self._engines[role] = engine
        self._factories[role] = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self._fallback.add(role)
        if previous is not None and previous is not engine:
            await previous.dispose()

    @asynccontextmanager
    async def read_session(self) -> AsyncGenerator[AsyncSession]:
        """Yield a session bound to the read pool."""
        self.read_engine()
        async with self._factories[PoolRole.READ]() as session:
            yield session

    @asynccontextmanager
    async def write_session(self) -> AsyncGenerator[AsyncSession]:
        """Yield a session bound to the write pool. Rolls back on error."""
        self.write_engine()
        async with self._factories[PoolRole.WRITE]() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    async def _ping(self, engine: AsyncEngine) -> None:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def connect(self) -> None:
        """
        Verify connectivity at startup.

        The primary is retried a bounded number of times; if it never answers
        the process cannot serve anything correctly and startup fails. An
        unreachable replica only degrades reads to the primary.
        """
        attempts = max(1, self._settings.db_connect_retries)
        for attempt in range(1, attempts + 1):
            try:
                await self._ping(self.write_engine())
                break
            except (SQLAlchemyError, OSError) as e:
                logger.error(
                    "Database connection failed (attempt %s/%s): %s", attempt, attempts, e,
                )
                if attempt == attempts:
                    raise DependencyDegradedError(
                        "Could not connect to the primary database",
                    ) from e
                await asyncio.sleep(self._settings.db_connect_retry_delay)

        if PoolRole.READ in self._fallback:
            return
        try:
            await self._ping(self.read_engine())
        except (SQLAlchemyError, OSError) as e:
            await self._degrade(PoolRole.READ, str(e))

    async def ping(self) -> bool:
        """Check primary connectivity (for health checks)."""
        try:
            await self._ping(self.write_engine())
            return True
        except (SQLAlchemyError, OSError):
            logger.exception("Database health check failed")
            return False

    def stats(self) -> dict[str, dict[str, Any] | None]:
        """Operational snapshot of both pools; None for a pool not yet created."""
        return {role.value: self._role_stats(role) for role in PoolRole}

    def _role_stats(self, role: PoolRole) -> dict[str, Any] | None:
        engine = self._engines.get(role)
        if engine is None:
            return None
        pool = engine.pool
        sized = isinstance(pool, QueuePool)
        return {
            "ready": True,
            "fallback": role in self._fallback,
            "host": engine.url.host,
            "database": engine.url.database,
            "pool_size": pool.size() if sized else None,
            "checked_out": pool.checkedout() if sized else None,
            "status": pool.status(),
        }

    @property
    def degraded(self) -> bool:
        """True when any role is running on the fallback engine."""
        return bool(self._fallback)

    async def close(self) -> None:
        """Dispose every engine this object created."""
        disposed: set[int] = set()
        engines = [*self._engines.values()]
        if self._default_engine is not None:
            engines.append(self._default_engine)
        for engine in engines:
            if id(engine) in disposed:
                continue
            disposed.add(id(engine))
            await engine.dispose()
        self._engines.clear()
        self._factories.clear()
        self._fallback.clear()
        self._default_engine = None
