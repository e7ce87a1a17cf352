"""
Service layer for user records.

Every function takes the session to run on. Callers pick the read session for
lookups that tolerate replica lag and the write session for anything that must
see its own prior writes; this module never decides that itself.
"""
from dataclasses import dataclass
from datetime import datetime, UTC
from uuid import UUID

from sqlalchemy import asc, desc, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstrumentedAttribute

from models.user import Role, User
from services.exceptions import ConflictError

DUPLICATE_EMAIL_MESSAGE = "User already exists with this email"

SORTABLE_COLUMNS: dict[str, InstrumentedAttribute] = {
    "createdAt": User.created_at,
    "email": User.email,
    "name": User.name,
}


@dataclass
class UserFilters:
    """Optional filters for admin user listing."""

    role: Role | None = None
    is_active: bool | None = None
    email: str | None = None
    name: str | None = None


def normalize_email(email: str) -> str:
    """Emails are unique case-insensitively; store and compare them lower-cased."""
    return email.strip().lower()


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def email_conflict(status_code: int | None = None) -> ConflictError:
    """The error raised whenever an email is already taken."""
    return ConflictError(DUPLICATE_EMAIL_MESSAGE, field="email", status_code=status_code)


async def get_by_id(db: AsyncSession, user_id: UUID) -> User | None:
    """Get a user by primary key."""
    return await db.get(User, user_id)


async def get_by_email(db: AsyncSession, email: str) -> User | None:
    """Get a user by email (case-insensitive)."""
    result = await db.execute(
        select(User).where(User.email == normalize_email(email)),
    )
    return result.scalar_one_or_none()


async def _get_by_live_token(
    db: AsyncSession,
    hash_column: InstrumentedAttribute,
    expires_column: InstrumentedAttribute,
    token_hash: str,
) -> User | None:
    """Match a stored token hash whose expiry is still in the future."""
    result = await db.execute(
        select(User).where(
            hash_column == token_hash,
            expires_column > datetime.now(UTC),
        ),
    )
    return result.scalar_one_or_none()


async def get_by_refresh_token(db: AsyncSession, token_hash: str) -> User | None:
    """Get the user holding this unexpired refresh token."""
    return await _get_by_live_token(
        db, User.refresh_token_hash, User.refresh_token_expires_at, token_hash,
    )


async def get_by_password_reset_token(db: AsyncSession, token_hash: str) -> User | None:
    """Get the user holding this unexpired password-reset token."""
    return await _get_by_live_token(
        db, User.password_reset_token_hash, User.password_reset_expires_at, token_hash,
    )


async def get_by_verification_token(db: AsyncSession, token_hash: str) -> User | None:
    """Get the user holding this unexpired email-verification token."""
    return await _get_by_live_token(
        db,
        User.email_verification_token_hash,
        User.email_verification_expires_at,
        token_hash,
    )


async def flush_user(db: AsyncSession, message: str = DUPLICATE_EMAIL_MESSAGE) -> None:
    """
    Flush pending user changes, normalizing unique-index violations.

    The unique index on email is the real uniqueness guarantee; any pre-check
    the caller did can lose a race, in which case the INSERT/UPDATE fails here.

    Raises:
        ConflictError: If the email is already taken.
    """
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError(message, field="email") from e


async def create_user(
    db: AsyncSession,
    email: str,
    password_hash: str,
    name: str,
    role: Role = Role.MEMBER,
) -> User:
    """
    Insert a new user.

    Note:
        Uses flush(), not commit. The caller commits once the whole flow succeeds.

    Raises:
        ConflictError: If a user with this email already exists.
    """
    user = User(
        email=normalize_email(email),
        password_hash=password_hash,
        name=name.strip(),
        role=role,
        is_active=True,
        email_verified=False,
    )
    db.add(user)
    await flush_user(db)
    await db.refresh(user)
    return user


async def list_users(
    db: AsyncSession,
    filters: UserFilters,
    offset: int = 0,
    limit: int = 10,
    sort: str = "createdAt",
    order: str = "desc",
) -> tuple[list[User], int]:
    """
    List users for admin views.

    Args:
        db: Database session (normally the read session).
        filters: Optional role/active/email/name filters. Email and name match
            case-insensitive substrings.
        offset: Rows to skip.
        limit: Maximum rows to return.
        sort: Key of SORTABLE_COLUMNS.
        order: "asc" or "desc".

    Returns:
        Tuple of (users, total matching count).
    """
    conditions = []
    if filters.role is not None:
        conditions.append(User.role == filters.role)
    if filters.is_active is not None:
        conditions.append(User.is_active == filters.is_active)
    if filters.email:
        conditions.append(
            User.email.ilike(f"%{_escape_like(filters.email)}%", escape="\\"),
        )
    if filters.name:
        conditions.append(
            User.name.ilike(f"%{_escape_like(filters.name)}%", escape="\\"),
        )

    total = await db.scalar(select(func.count()).select_from(User).where(*conditions))

    column = SORTABLE_COLUMNS.get(sort, User.created_at)
    direction = asc if order == "asc" else desc
    result = await db.execute(
        select(User)
        .where(*conditions)
        .order_by(direction(column), User.id)
        .offset(offset)
        .limit(limit),
    )
    return list(result.scalars().all()), total or 0
