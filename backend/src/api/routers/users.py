"""User profile and admin user management endpoints."""
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import (
    get_context,
    get_current_user,
    get_read_session,
    get_write_session,
    require_admin,
)
from core.config import Settings
from core.context import ServiceContext
from core.response_cache import cached, key_by_path_and_query
from models.user import Role, User
from schemas.auth import MessageResponse
from schemas.user import (
    AdminUserUpdate,
    PasswordChange,
    ProfileUpdate,
    UserEnvelope,
    UserListResponse,
    UserPublic,
    UserUpdateResponse,
)
from services import profile_service
from services.user_service import UserFilters

router = APIRouter(prefix="/users", tags=["users"])


def _user_ttl(settings: Settings) -> int:
    return settings.user_cache_ttl


@router.patch("/me", response_model=UserUpdateResponse)
async def update_me(
    data: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    context: ServiceContext = Depends(get_context),
    write_db: AsyncSession = Depends(get_write_session),
) -> UserUpdateResponse:
    """
    Update the current user's name and/or email.

    Changing the email marks it unverified.
    """
    user = await profile_service.update_profile(context, write_db, current_user.id, data)
    return UserUpdateResponse(
        message="Profile updated successfully",
        user=UserPublic.model_validate(user),
    )


@router.put("/me/password", response_model=MessageResponse)
async def change_my_password(
    data: PasswordChange,
    current_user: User = Depends(get_current_user),
    context: ServiceContext = Depends(get_context),
    write_db: AsyncSession = Depends(get_write_session),
) -> MessageResponse:
    """Change password. Existing refresh tokens stop working."""
    await profile_service.change_password(context, write_db, current_user.id, data)
    return MessageResponse(message="Password changed successfully")


@router.get("", response_model=UserListResponse)
@cached(ttl=_user_ttl, key_fn=key_by_path_and_query)
async def list_users(
    request: Request,  # noqa: ARG001 - read by the cache decorator
    response: Response,  # noqa: ARG001 - read by the cache decorator
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=profile_service.MAX_PAGE_SIZE),
    sort: Literal["createdAt", "email", "name"] = Query(default="createdAt"),
    order: Literal["asc", "desc"] = Query(default="desc"),
    role: Role | None = Query(default=None),
    is_active: bool | None = Query(default=None, alias="isActive"),
    email: str | None = Query(default=None, max_length=255),
    name: str | None = Query(default=None, max_length=100),
    _admin: User = Depends(require_admin),
    read_db: AsyncSession = Depends(get_read_session),
) -> UserListResponse:
    """
    List users (admin only).

    Email and name filter by case-insensitive substring. Cached by query;
    see the X-Cache header.
    """
    filters = UserFilters(role=role, is_active=is_active, email=email, name=name)
    users, pagination = await profile_service.list_users(
        read_db, filters, page=page, limit=limit, sort=sort, order=order,
    )
    return UserListResponse(
        users=[UserPublic.model_validate(u) for u in users],
        pagination=pagination,
    )


@router.get("/{user_id}", response_model=UserEnvelope)
@cached(ttl=_user_ttl, key_fn=key_by_path_and_query)
async def get_user(
    request: Request,  # noqa: ARG001 - read by the cache decorator
    response: Response,  # noqa: ARG001 - read by the cache decorator
    user_id: UUID,
    _admin: User = Depends(require_admin),
    read_db: AsyncSession = Depends(get_read_session),
) -> UserEnvelope:
    """Get a user by id (admin only)."""
    user = await profile_service.get_user(read_db, user_id)
    return UserEnvelope(user=UserPublic.model_validate(user))


@router.patch("/{user_id}", response_model=UserUpdateResponse)
async def update_user(
    user_id: UUID,
    data: AdminUserUpdate,
    _admin: User = Depends(require_admin),
    context: ServiceContext = Depends(get_context),
    write_db: AsyncSession = Depends(get_write_session),
) -> UserUpdateResponse:
    """Update a user's name, email, role or active flag (admin only)."""
    user = await profile_service.admin_update_user(context, write_db, user_id, data)
    return UserUpdateResponse(
        message="User updated successfully",
        user=UserPublic.model_validate(user),
    )
