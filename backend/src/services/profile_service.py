"""Profile self-service and admin user management."""
import logging
import math
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from core.context import ServiceContext
from core.passwords import hash_password, verify_password
from core.response_cache import user_cache_patterns
from models.user import User
from schemas.user import AdminUserUpdate, Pagination, PasswordChange, ProfileUpdate
from services import user_service
from services.exceptions import AuthenticationError, NotFoundError
from services.user_service import UserFilters

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


async def _apply_email_change(db: AsyncSession, user: User, email: str) -> None:
    """Change email, un-verifying it. No-op if unchanged."""
    if email == user.email:
        return
    existing = await user_service.get_by_email(db, email)
    if existing is not None and existing.id != user.id:
        raise user_service.email_conflict()
    user.email = email
    user.email_verified = False
    user.email_verification_token_hash = None
    user.email_verification_expires_at = None


async def update_profile(
    context: ServiceContext,
    write_db: AsyncSession,
    user_id: UUID,
    data: ProfileUpdate,
) -> User:
    """
    Update the caller's name and/or email.

    Raises:
        NotFoundError: If the user vanished since authentication.
        ConflictError: (HTTP 409) If the new email is taken.
    """
    user = await user_service.get_by_id(write_db, user_id)
    if user is None:
        raise NotFoundError("User not found")

    if data.name is not None:
        user.name = data.name
    if data.email is not None:
        await _apply_email_change(write_db, user, data.email)

    await user_service.flush_user(write_db)
    await write_db.commit()

    await context.cache.invalidate(*user_cache_patterns(user.id))
    logger.info("profile_updated", extra={"user_id": str(user.id)})
    return user


async def change_password(
    context: ServiceContext,
    write_db: AsyncSession,
    user_id: UUID,
    data: PasswordChange,
) -> None:
    """
    Change the caller's password after checking the current one.

    Clears the refresh token: other sessions must sign in again.

    Raises:
        AuthenticationError: If the current password is wrong.
    """
    user = await user_service.get_by_id(write_db, user_id)
    if user is None:
        raise NotFoundError("User not found")
    if not await verify_password(data.current_password, user.password_hash):
        raise AuthenticationError("Current password is incorrect")

    user.password_hash = await hash_password(data.new_password, context.settings.bcrypt_rounds)
    user.refresh_token_hash = None
    user.refresh_token_expires_at = None
    await write_db.commit()

    await context.cache.invalidate(*user_cache_patterns(user.id))
    logger.info("password_changed", extra={"user_id": str(user.id)})


async def list_users(
    read_db: AsyncSession,
    filters: UserFilters,
    page: int = 1,
    limit: int = 10,
    sort: str = "createdAt",
    order: str = "desc",
) -> tuple[list[User], Pagination]:
    """List users with pagination metadata."""
    page = max(1, page)
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    users, total = await user_service.list_users(
        read_db, filters, offset=(page - 1) * limit, limit=limit, sort=sort, order=order,
    )
    total_pages = math.ceil(total / limit) if total else 0
    return users, Pagination(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
    )


async def get_user(read_db: AsyncSession, user_id: UUID) -> User:
    """
    Get a user by id for admin views.

    Raises:
        NotFoundError: If no such user exists.
    """
    user = await user_service.get_by_id(read_db, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def admin_update_user(
    context: ServiceContext,
    write_db: AsyncSession,
    user_id: UUID,
    data: AdminUserUpdate,
) -> User:
    """
    Update another user's name, email, role or active flag.

    Deactivating a user also clears their refresh token.

    Raises:
        NotFoundError: If no such user exists.
        ConflictError: (HTTP 409) If the new email is taken.
    """
    user = await user_service.get_by_id(write_db, user_id)
    if user is None:
        raise NotFoundError("User not found")

    if data.name is not None:
        user.name = data.name
    if data.email is not None:
        await _apply_email_change(write_db, user, data.email)
    if data.role is not None:
        user.role = data.role
    if data.is_active is not None:
        user.is_active = data.is_active
        if not data.is_active:
            user.refresh_token_hash = None
            user.refresh_token_expires_at = None

    await user_service.flush_user(write_db)
    await write_db.commit()

    await context.cache.invalidate(*user_cache_patterns(user.id))
    logger.info("user_updated_by_admin", extra={"user_id": str(user.id)})
    return user
