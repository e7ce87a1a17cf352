"""Response caching for idempotent GET endpoints."""
import asyncio
import functools
import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TYPE_CHECKING
from urllib.parse import urlencode
from uuid import UUID

from fastapi import Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

if TYPE_CHECKING:
    from core.config import Settings
    from core.redis import RedisClient

logger = logging.getLogger(__name__)

# Cache schema version - included in all cache keys (e.g., "cache:v1:/auth/me:...")
#
# Bump this version when the shape of any cached response changes. Old entries
# are then never looked up again and expire naturally via their TTL, so no
# invalidation is needed during deployments.
CACHE_SCHEMA_VERSION = 1
CACHE_PREFIX = f"cache:v{CACHE_SCHEMA_VERSION}"

CACHE_HEADER = "X-Cache"

ME_PATH = "/auth/me"
USERS_PATH = "/users"

KeyBuilder = Callable[[Request, dict[str, Any]], str]
TTLSource = int | Callable[["Settings"], int]


def build_cache_key(
    path: str,
    query_params: Iterable[tuple[str, str]] | None = None,
    principal_id: UUID | str | None = None,
) -> str:
    """
    Build a deterministic cache key.

    Query parameters are sorted by key then value so "?b=2&a=1" and "?a=1&b=2"
    share a slot. The principal id is appended for principal-scoped responses,
    so two users never share a slot.

    Returns:
        Key of the form ``cache:v1:<path>[?<sorted query>][:<principal>]``.
    """
    key = f"{CACHE_PREFIX}:{path}"
    params = sorted(query_params or ())
    if params:
        key += "?" + urlencode(params)
    if principal_id is not None:
        key += f":{principal_id}"
    return key


def me_cache_pattern(user_id: UUID | str) -> str:
    """Key of the cached GET /auth/me response for a user."""
    return build_cache_key(ME_PATH, principal_id=user_id)


def users_cache_pattern() -> str:
    """Pattern matching every cached admin user listing and user lookup."""
    return f"{CACHE_PREFIX}:{USERS_PATH}*"


def user_cache_patterns(user_id: UUID | str) -> list[str]:
    """Every pattern that may hold a stale copy of this user."""
    return [me_cache_pattern(user_id), users_cache_pattern()]


def key_by_path_and_query(request: Request, _params: dict[str, Any]) -> str:
    """Key builder for responses that depend only on path and query string."""
    return build_cache_key(request.url.path, request.query_params.multi_items())


def key_by_principal(param: str = "current_user", include_query: bool = False) -> KeyBuilder:
    """
    Key builder for principal-scoped responses.

    The query string is left out by default so the key matches what
    me_cache_pattern() invalidates; a cache-busting "?_=<ts>" from a client
    must not create a slot that invalidation never reaches.

    Args:
        param: Name of the handler parameter holding the authenticated user.
        include_query: Key on the query string as well.
    """
    def build(request: Request, params: dict[str, Any]) -> str:
        query = request.query_params.multi_items() if include_query else None
        return build_cache_key(request.url.path, query, principal_id=params[param].id)
    return build


class ResponseCache:
    """
    Redis-backed store of serialized JSON responses.

    Reads are awaited. Writes are fire-and-forget background tasks, so a slow
    or unavailable Redis never delays or fails the response. Invalidation is
    awaited by mutating flows but never raises.
    """

    def __init__(self, redis_client: "RedisClient", enabled: bool = True) -> None:
        self._redis = redis_client
        self._enabled = enabled
        self._pending: set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        """True when caching is on and Redis is reachable."""
        return self._enabled and self._redis.is_connected

    async def get(self, key: str) -> Any | None:
        """Return the cached payload for a key, or None on miss."""
        if not self.enabled:
            return None
        data = await self._redis.get(key)
        if data is None:
            logger.debug("response_cache_miss key=%s", key)
            return None
        try:
            payload = json.loads(data)
        except ValueError:
            logger.warning("response_cache_corrupt_entry", extra={"key": key})
            return None
        logger.debug("response_cache_hit key=%s", key)
        return payload

    def store(self, key: str, ttl_seconds: int, payload: Any) -> None:
        """Schedule a background write of a JSON-serializable payload."""
        if not self.enabled:
            return
        data = json.dumps(payload)
        task = asyncio.create_task(self._write(key, ttl_seconds, data))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, key: str, ttl_seconds: int, data: str) -> None:
        if not await self._redis.setex(key, ttl_seconds, data):
            logger.warning("response_cache_store_failed", extra={"key": key})

    async def invalidate(self, *patterns: str) -> None:
        """
        Delete every cached entry matching the given glob patterns.

        Best-effort: a Redis outage is logged and the caller proceeds.
        """
        if not self._redis.is_connected:
            return
        for pattern in patterns:
            deleted = await self._redis.delete_pattern(pattern)
            if deleted is None:
                logger.warning("response_cache_invalidate_failed", extra={"pattern": pattern})
            else:
                logger.debug("response_cache_invalidate pattern=%s deleted=%s", pattern, deleted)

    async def drain(self) -> None:
        """Wait for pending background writes to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending_writes(self) -> int:
        """Number of background writes still in flight."""
        return len(self._pending)


def _resolve_ttl(ttl: TTLSource, settings: "Settings") -> int:
    return ttl(settings) if callable(ttl) else ttl


def cached(ttl: TTLSource, key_fn: KeyBuilder) -> Callable:
    """
    Cache the JSON body of a FastAPI GET handler.

    The handler must declare ``request: Request`` and ``response: Response``
    parameters. The cache itself is taken from the service context on
    ``request.app.state.context``.

    On a hit the stored body is returned directly with ``X-Cache: HIT``. On a
    miss the handler runs, its result is scheduled for storage, and the
    response carries ``X-Cache: MISS``.

    Args:
        ttl: Seconds to keep the entry, or a callable reading it from Settings.
        key_fn: Builds the cache key from the request and handler arguments.

    Example:
        @router.get("/me")
        @cached(ttl=lambda s: s.me_cache_ttl, key_fn=key_by_principal())
        async def get_me(request: Request, response: Response, current_user: User = ...):
            ...
    """
    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(**kwargs: Any) -> Any:
            request: Request = kwargs["request"]
            response: Response = kwargs["response"]
            context = request.app.state.context
            cache: ResponseCache = context.cache
            key = key_fn(request, kwargs)

            payload = await cache.get(key)
            if payload is not None:
                return JSONResponse(content=payload, headers={CACHE_HEADER: "HIT"})

            result = await func(**kwargs)
            cache.store(key, _resolve_ttl(ttl, context.settings), jsonable_encoder(result))
            response.headers[CACHE_HEADER] = "MISS"
            return result

        return wrapper
    return decorator
