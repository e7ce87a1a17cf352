"""
Redis access for the response cache, rate limiter and event queues.

Every operation degrades instead of raising: reads return None, writes return
False, and the caller carries on without Redis. Nothing in a request path may
fail because the cache tier is down.
"""
import logging
from typing import Any

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import NoScriptError, RedisError

logger = logging.getLogger(__name__)

# Sorted-set sliding window. Members are "<ts>:<request id>" so two requests in
# the same second are both counted.
# Returns {allowed, remaining, retry_after_seconds}.
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local member = ARGV[1] .. ':' .. ARGV[4]

redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
local used = redis.call('ZCARD', key)

if used >= limit then
    local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
    local retry_after = 1
    if oldest[2] then
        retry_after = math.max(1, math.ceil(tonumber(oldest[2]) + window - now))
    end
    return {0, 0, retry_after}
end

redis.call('ZADD', key, now, member)
redis.call('EXPIRE', key, window)
return {1, limit - used - 1, 0}
"""

# Keys per SCAN page and per DEL call during pattern invalidation
DELETE_BATCH_SIZE = 500


class RedisClient:
    """Pooled async Redis connection that never lets a Redis failure escape."""

    def __init__(self, url: str, enabled: bool = True, pool_size: int = 20) -> None:
        self._url = url
        self._enabled = enabled
        self._pool_size = pool_size
        self._pool: ConnectionPool | None = None
        self._client: Redis | None = None
        self._sliding_window_sha: str | None = None

    async def connect(self, client: Redis | None = None) -> None:
        """
        Open the pool, check it answers, and register the Lua scripts.

        Args:
            client: Pre-built client to use instead of a pool from the URL
                (an in-memory server in tests, for instance).
        """
        if not self._enabled:
            logger.info("redis_disabled")
            return
        try:
            if client is None:
                self._pool = ConnectionPool.from_url(self._url, max_connections=self._pool_size)
                client = Redis(connection_pool=self._pool)
            await client.ping()
            self._client = client
            await self._load_scripts()
            logger.info("redis_connected")
        except (RedisError, OSError) as e:
            logger.warning("redis_unavailable", extra={"error": str(e)})
            self._client = None
            self._pool = None

    async def _load_scripts(self) -> None:
        if self._client is None:
            return
        try:
            self._sliding_window_sha = await self._client.script_load(SLIDING_WINDOW_SCRIPT)
        except RedisError as e:
            self._sliding_window_sha = None
            logger.warning("redis_script_load_failed", extra={"error": str(e)})

    async def close(self) -> None:
        """Release the connection pool."""
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None
        self._pool = None
        logger.info("redis_closed")

    @property
    def is_connected(self) -> bool:
        """True once connect() succeeded and until close()."""
        return self._client is not None

    @property
    def sliding_window_sha(self) -> str | None:
        """SHA of the loaded sliding window script."""
        return self._sliding_window_sha

    async def ping(self) -> bool:
        """Round-trip check for health reporting."""
        if self._client is None:
            return False
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    async def get(self, key: str) -> bytes | None:
        """GET; None on miss or failure."""
        if self._client is None:
            return None
        try:
            return await self._client.get(key)
        except RedisError as e:
            logger.warning("redis_get_failed", extra={"key": key, "error": str(e)})
            return None

    async def setex(self, key: str, seconds: int, value: str | bytes) -> bool:
        """SETEX; False on failure."""
        if self._client is None:
            return False
        try:
            await self._client.setex(key, seconds, value)
        except RedisError as e:
            logger.warning("redis_setex_failed", extra={"key": key, "error": str(e)})
            return False
        return True

    async def delete_pattern(self, pattern: str) -> int | None:
        """
        Delete every key matching a glob pattern.

        Walks the keyspace with SCAN, never KEYS, so a large cache does not
        stall the server, and deletes in batches.

        Returns:
            Number of keys deleted, or None if Redis is unavailable.
        """
        if self._client is None:
            return None
        deleted = 0
        batch: list[bytes] = []
        try:
            async for key in self._client.scan_iter(match=pattern, count=DELETE_BATCH_SIZE):
                batch.append(key)
                if len(batch) == DELETE_BATCH_SIZE:
                    deleted += await self._client.delete(*batch)
                    batch.clear()
            if batch:
                deleted += await self._client.delete(*batch)
        except RedisError as e:
            logger.warning("redis_delete_pattern_failed", extra={"pattern": pattern, "error": str(e)})
            return None
        return deleted

    async def lpush(self, key: str, value: str | bytes) -> bool:
        """LPUSH onto a list (event queues); False on failure."""
        if self._client is None:
            return False
        try:
            await self._client.lpush(key, value)
        except RedisError as e:
            logger.warning("redis_lpush_failed", extra={"key": key, "error": str(e)})
            return False
        return True

    async def _evalsha(self, key: str, *args: Any) -> Any:
        """
        Run the sliding window script, reloading it once after NOSCRIPT.

        NOSCRIPT means the server restarted or flushed its script cache since
        connect().
        """
        try:
            return await self._client.evalsha(self._sliding_window_sha, 1, key, *args)
        except NoScriptError:
            logger.warning("redis_script_reload", extra={"script": "sliding_window"})
            await self._load_scripts()
            if self._sliding_window_sha is None:
                return None
            return await self._client.evalsha(self._sliding_window_sha, 1, key, *args)

    async def eval_sliding_window(
        self,
        key: str,
        now: int,
        window_seconds: int,
        max_requests: int,
        request_id: str,
    ) -> list[int] | None:
        """
        Count one request against a sliding window.

        Args:
            key: Bucket key.
            now: Current Unix time in seconds.
            window_seconds: Window length.
            max_requests: Requests allowed per window.
            request_id: Unique suffix for this request's set member.

        Returns:
            ``[allowed, remaining, retry_after]``, or None when Redis cannot
            answer (callers fail open).
        """
        if self._client is None or self._sliding_window_sha is None:
            return None
        try:
            return await self._evalsha(key, now, window_seconds, max_requests, request_id)
        except RedisError as e:
            logger.warning("redis_sliding_window_failed", extra={"key": key, "error": str(e)})
            return None
