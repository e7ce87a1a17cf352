"""User model storing credentials and outstanding token state."""
from datetime import datetime
from enum import StrEnum

from sqlalchemy import Boolean, DateTime, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin, UUIDv7Mixin


class Role(StrEnum):
    """Principal roles."""

    MEMBER = "member"
    ADMIN = "admin"


class User(Base, UUIDv7Mixin, TimestampMixin):
    """
    User model - the authenticated principal.

    Every token column stores a SHA-256 hash, never the plaintext. Each token
    kind has at most one outstanding value per user: issuing a new one
    overwrites the previous hash in the same UPDATE.

    Never serialize this object directly; use schemas.user.UserPublic.
    """

    __tablename__ = "users"

    # id provided by UUIDv7Mixin
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        comment="Lower-cased, trimmed email; the unique index is the source of truth",
    )
    password_hash: Mapped[str] = mapped_column(String(255))
    name: Mapped[str] = mapped_column(String(100))
    role: Mapped[Role] = mapped_column(
        Enum(Role, name="user_role", values_callable=lambda roles: [r.value for r in roles]),
        default=Role.MEMBER,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False)

    refresh_token_hash: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True,
    )
    refresh_token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    password_reset_token_hash: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True,
    )
    password_reset_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    email_verification_token_hash: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True,
    )
    email_verification_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role}>"
