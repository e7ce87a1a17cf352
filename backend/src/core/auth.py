"""Authentication dependencies for bearer access tokens."""
import logging
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core.context import ServiceContext
from db.session import get_context, get_read_session
from models.user import Role, User
from services import token_service, user_service
from services.exceptions import AuthenticationError, AuthorizationError

logger = logging.getLogger(__name__)


# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _subject(payload: dict) -> UUID:
    """Extract the user id from a decoded access token."""
    if payload.get("type") != token_service.ACCESS_TOKEN_TYPE:
        raise _unauthorized("Invalid token")
    try:
        return UUID(str(payload.get("sub")))
    except ValueError:
        raise _unauthorized("Invalid token")


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_read_session),
    context: ServiceContext = Depends(get_context),
) -> User:
    """
    Dependency that validates the access token and returns the current user.

    The user is loaded through the read pool: a principal that has just been
    deactivated may still pass for the length of the replica lag.
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")

    try:
        payload = token_service.decode_access_token(credentials.credentials, context.settings)
    except AuthenticationError as e:
        logger.debug("access_token_rejected reason=%s", e.message)
        raise _unauthorized(e.message)

    user = await user_service.get_by_id(db, _subject(payload))
    if user is None:
        raise _unauthorized("Invalid token")
    if not user.is_active:
        raise _unauthorized("Account is deactivated")
    return user


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """
    Dependency that additionally requires the admin role.

    Raises:
        AuthorizationError: If the user is authenticated but not an admin.
    """
    if current_user.role != Role.ADMIN:
        raise AuthorizationError()
    return current_user
