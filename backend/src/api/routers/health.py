"""Health check endpoints."""
import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from core.context import ServiceContext
from db.session import get_context


logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    cache: str
    pools: dict[str, dict[str, Any] | None]


@router.get("/health", response_model=HealthResponse)
async def health_check(
    context: ServiceContext = Depends(get_context),
) -> HealthResponse:
    """
    Check database and cache connectivity.

    Always returns 200; a degraded dependency is reported in the body. The
    cache being down only degrades performance, so it does not change status.
    """
    db_status = "healthy" if await context.pools.ping() else "unhealthy"
    if db_status == "healthy" and context.pools.degraded:
        db_status = "degraded"

    if not context.settings.redis_enabled:
        cache_status = "disabled"
    elif await context.redis.ping():
        cache_status = "healthy"
    else:
        cache_status = "unavailable"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        database=db_status,
        cache=cache_status,
        pools=context.pools.stats(),
    )
