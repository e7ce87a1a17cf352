"""Process-wide services, built once at startup and injected per request."""
import logging
from dataclasses import dataclass

from redis.asyncio import Redis

from core.config import Settings
from core.redis import RedisClient
from core.response_cache import ResponseCache
from db.pools import DatabasePools
from services.events import EventPublisher, NullEventPublisher, RedisEventPublisher

logger = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    """
    Everything a request handler needs besides its own input.

    Lives on ``app.state.context``. Handlers reach it through the
    ``get_context`` dependency rather than module-level globals, so tests can
    build one against SQLite and an in-memory Redis.
    """

    settings: Settings
    pools: DatabasePools
    redis: RedisClient
    cache: ResponseCache
    events: EventPublisher

    async def close(self) -> None:
        """Flush pending cache writes and release connections."""
        await self.cache.drain()
        await self.redis.close()
        await self.pools.close()


async def build_context(
    settings: Settings,
    redis_client: Redis | None = None,
    events: EventPublisher | None = None,
    connect_database: bool = True,
) -> ServiceContext:
    """
    Connect to the stores and assemble the service context.

    Args:
        settings: Application settings.
        redis_client: Optional pre-built Redis client (e.g. fakeredis in tests).
        events: Optional publisher overriding the one chosen from settings.
        connect_database: Run the primary connectivity check with retries.

    Raises:
        DependencyDegradedError: If the primary database never answers.
    """
    pools = DatabasePools(settings)
    if connect_database:
        await pools.connect()

    redis = RedisClient(
        settings.redis_url,
        enabled=settings.redis_enabled,
        pool_size=settings.redis_pool_size,
    )
    await redis.connect(redis_client)

    cache = ResponseCache(redis, enabled=settings.cache_enabled)

    if events is None:
        if settings.events_enabled:
            events = RedisEventPublisher(redis, prefix=settings.events_queue_prefix)
        else:
            events = NullEventPublisher()

    logger.info(
        "service_context_ready",
        extra={
            "redis_connected": redis.is_connected,
            "cache_enabled": cache.enabled,
            "db_degraded": pools.degraded,
        },
    )
    return ServiceContext(
        settings=settings,
        pools=pools,
        redis=redis,
        cache=cache,
        events=events,
    )
