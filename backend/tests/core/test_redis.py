"""
Tests for the Redis client.

Plain GET/SETEX pass-throughs are only checked for their failure behaviour;
the sliding window script, SCAN deletion and soft-failure paths carry the logic.
"""
import time
import uuid
from unittest.mock import AsyncMock, patch

import fakeredis
from redis.exceptions import NoScriptError, RedisError

from core.redis import DELETE_BATCH_SIZE, RedisClient


class TestRedisLuaScripts:
    """Tests for the sliding window Lua script used in rate limiting."""

    async def test__lua_scripts__loaded_on_connect(
        self, redis_client: RedisClient,
    ) -> None:
        """Lua scripts are loaded when connecting."""
        assert redis_client.sliding_window_sha is not None

    async def test__eval_sliding_window__allows_then_denies(
        self, redis_client: RedisClient,
    ) -> None:
        """Sliding window admits `limit` requests, then denies with a retry hint."""
        now = int(time.time())
        for i in range(3):
            result = await redis_client.eval_sliding_window(
                "test:sliding", now + i, 60, 3, str(uuid.uuid4()),
            )
            assert result[0] == 1  # allowed
            assert result[1] == 3 - i - 1  # remaining (2, 1, 0)

        result = await redis_client.eval_sliding_window(
            "test:sliding", now + 3, 60, 3, str(uuid.uuid4()),
        )
        assert result[0] == 0  # denied
        assert result[1] == 0
        assert result[2] > 0  # retry_after

    async def test__eval_sliding_window__reloads_script_on_noscript(
        self, redis_client: RedisClient,
    ) -> None:
        """A NOSCRIPT error (Redis restarted) reloads the script and retries once."""
        original = redis_client._client.evalsha
        calls = 0

        async def flaky_evalsha(*args: object) -> object:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise NoScriptError("NOSCRIPT No matching script")
            return await original(*args)

        with patch.object(redis_client._client, "evalsha", side_effect=flaky_evalsha):
            result = await redis_client.eval_sliding_window(
                "test:reload", int(time.time()), 60, 5, str(uuid.uuid4()),
            )

        assert calls == 2
        assert result[0] == 1


class TestDeletePattern:
    """Tests for SCAN-based pattern deletion."""

    async def test__delete_pattern__deletes_only_matching_keys(
        self, redis_client: RedisClient,
    ) -> None:
        """Keys matching the glob are removed; others are untouched."""
        await redis_client.setex("cache:v1:/users?page=1", 60, "a")
        await redis_client.setex("cache:v1:/users/abc", 60, "b")
        await redis_client.setex("cache:v1:/auth/me:abc", 60, "c")

        deleted = await redis_client.delete_pattern("cache:v1:/users*")

        assert deleted == 2
        assert await redis_client.get("cache:v1:/users?page=1") is None
        assert await redis_client.get("cache:v1:/users/abc") is None
        assert await redis_client.get("cache:v1:/auth/me:abc") == b"c"

    async def test__delete_pattern__handles_more_keys_than_one_batch(
        self, redis_client: RedisClient,
    ) -> None:
        """Deletion spans multiple DEL batches."""
        total = DELETE_BATCH_SIZE + 25
        for i in range(total):
            await redis_client.setex(f"bulk:{i}", 60, "x")

        assert await redis_client.delete_pattern("bulk:*") == total

    async def test__delete_pattern__no_match_returns_zero(
        self, redis_client: RedisClient,
    ) -> None:
        """No matching keys is not an error."""
        assert await redis_client.delete_pattern("nothing:*") == 0


class TestRedisClientDisabled:
    """Tests for Redis client when disabled."""

    async def test__disabled_client__operations_return_safe_defaults(self) -> None:
        """Disabled client never touches the network and returns safe defaults."""
        client = RedisClient("redis://localhost:6379", enabled=False)
        await client.connect()

        assert client.is_connected is False
        assert await client.ping() is False
        assert await client.get("any:key") is None
        assert await client.setex("any:key", 60, "value") is False
        assert await client.delete_pattern("any:*") is None
        assert await client.lpush("queue:email", "{}") is False
        assert await client.eval_sliding_window("k", 0, 60, 1, "id") is None

        await client.close()


class TestRedisClientUnavailable:
    """Tests for Redis client when server is unavailable."""

    async def test__unavailable_server__connect_fails_gracefully(self) -> None:
        """Client handles unavailable server gracefully."""
        # Use invalid port
        client = RedisClient("redis://localhost:59999", enabled=True)
        await client.connect()

        # Should not be connected but should not raise
        assert client.is_connected is False
        assert await client.get("key") is None

        await client.close()


class TestRedisOperationFailures:
    """Tests for Redis operation failures when connected (network blips, timeouts)."""

    async def test__get__returns_none_on_redis_error(
        self, redis_client: RedisClient,
    ) -> None:
        """GET returns None when Redis raises an error mid-operation."""
        with patch.object(
            redis_client._client, "get",
            new_callable=AsyncMock,
            side_effect=RedisError("Connection lost"),
        ):
            result = await redis_client.get("any-key")

        assert result is None

    async def test__setex__returns_false_on_redis_error(
        self, redis_client: RedisClient,
    ) -> None:
        """SETEX returns False when Redis raises an error mid-operation."""
        with patch.object(
            redis_client._client, "setex",
            new_callable=AsyncMock,
            side_effect=RedisError("Connection lost"),
        ):
            result = await redis_client.setex("any-key", 60, "value")

        assert result is False

    async def test__delete_pattern__returns_none_on_redis_error(
        self, redis_client: RedisClient,
    ) -> None:
        """Pattern delete returns None when SCAN fails mid-operation."""
        with patch.object(
            redis_client._client, "scan_iter",
            side_effect=RedisError("Connection lost"),
        ):
            result = await redis_client.delete_pattern("cache:*")

        assert result is None

    async def test__lpush__returns_false_on_redis_error(
        self, redis_client: RedisClient,
    ) -> None:
        """LPUSH returns False when Redis raises an error mid-operation."""
        with patch.object(
            redis_client._client, "lpush",
            new_callable=AsyncMock,
            side_effect=RedisError("Connection lost"),
        ):
            result = await redis_client.lpush("queue:email", "{}")

        assert result is False

    async def test__eval_sliding_window__returns_none_on_redis_error(
        self, redis_client: RedisClient,
    ) -> None:
        """EVALSHA failure fails open (None)."""
        with patch.object(
            redis_client._client, "evalsha",
            new_callable=AsyncMock,
            side_effect=RedisError("Connection lost"),
        ):
            result = await redis_client.eval_sliding_window("k", 0, 60, 1, "id")

        assert result is None


async def test__connect__accepts_injected_client() -> None:
    """An already-built client is used as-is instead of a new pool."""
    server = fakeredis.FakeAsyncRedis()
    client = RedisClient("redis://unused")
    await client.connect(server)

    assert client.is_connected is True
    assert await client.lpush("queue:test", "payload") is True
    assert await server.lrange("queue:test", 0, -1) == [b"payload"]

    await client.close()
