"""
Sliding-window rate limiting backed by Redis.

Policies and their limits live in rate_limit_config.py. When Redis cannot
answer, every request is let through.
"""
import logging
import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request

from core.rate_limit_config import (
    RATE_LIMITS,
    RateLimitExceededError,
    RateLimitPolicy,
    RateLimitResult,
)
from core.redis import RedisClient

logger = logging.getLogger(__name__)


def client_identifier(request: Request) -> str:
    """
    Identify the caller for rate limiting.

    Uses the authenticated user id when a dependency has stored one on
    request.state, otherwise the first X-Forwarded-For hop or the peer address.
    """
    user_id = getattr(request.state, "user_id", None)
    if user_id is not None:
        return f"user:{user_id}"
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"


async def check_rate_limit(
    redis_client: RedisClient | None,
    identifier: str,
    policy: RateLimitPolicy,
) -> RateLimitResult:
    """
    Count one request from `identifier` against `policy`.

    The result carries the values for the X-RateLimit-* headers. A missing or
    failing Redis yields an allowed result with the full quota remaining.
    """
    config = RATE_LIMITS[policy]
    permissive = RateLimitResult(
        allowed=True,
        limit=config.max_requests,
        remaining=config.max_requests,
        reset=0,
        retry_after=0,
    )

    if redis_client is None or not redis_client.is_connected:
        # Redis disabled or never connected; logged once by RedisClient.connect
        return permissive

    now = int(time.time())
    key = f"rate:{policy.value}:{identifier}"
    result = await redis_client.eval_sliding_window(
        key=key,
        now=now,
        window_seconds=config.window_seconds,
        max_requests=config.max_requests,
        request_id=str(uuid.uuid4()),
    )
    if result is None:
        return permissive

    allowed, remaining, retry_after = result
    outcome = RateLimitResult(
        allowed=bool(allowed),
        limit=config.max_requests,
        remaining=max(0, remaining),
        reset=now + config.window_seconds,
        retry_after=max(0, retry_after) if not allowed else 0,
    )
    if not outcome.allowed:
        logger.warning(
            "rate_limit_exceeded",
            extra={"identifier": identifier, "policy": policy.value},
        )
    return outcome


def rate_limit(policy: RateLimitPolicy) -> Callable[[Request], Awaitable[None]]:
    """
    Build a route dependency enforcing a rate limit policy.

    Stores the result on request.state.rate_limit_info for the headers
    middleware.

    Raises:
        RateLimitExceededError: If the caller is over the limit.
    """
    async def dependency(request: Request) -> None:
        context = request.app.state.context
        if not context.settings.rate_limit_enabled:
            return

        result = await check_rate_limit(context.redis, client_identifier(request), policy)
        request.state.rate_limit_info = {
            "limit": result.limit,
            "remaining": result.remaining,
            "reset": result.reset,
        }
        if not result.allowed:
            raise RateLimitExceededError(result, RATE_LIMITS[policy].message)

    return dependency
