"""FastAPI dependencies yielding read and write database sessions."""
from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.context import ServiceContext


def get_context(request: Request) -> ServiceContext:
    """Return the service context built at startup."""
    return request.app.state.context


async def get_read_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """
    Yield a session on the read pool.

    Read sessions never commit; they may lag behind the primary.
    """
    async with get_context(request).pools.read_session() as session:
        yield session


async def get_write_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """
    Yield a session on the write pool.

    Services use flush(); the orchestrating flow commits explicitly before it
    invalidates caches, so the commit is visible before the response is sent.
    Anything left uncommitted when the request ends is rolled back.
    """
    async with get_context(request).pools.write_session() as session:
        yield session
