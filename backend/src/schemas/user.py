"""Pydantic schemas for user views and profile/admin updates."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from models.user import Role
from schemas.validators import (
    validate_and_normalize_email,
    validate_name,
    validate_password,
)


class CamelModel(BaseModel):
    """Base for API schemas: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserPublic(CamelModel):
    """
    Public-safe user view.

    Built from the ORM User via from_attributes. Only the fields listed here
    are ever serialized; password and token hashes never leave the service.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True,
    )

    id: UUID
    email: str
    name: str
    role: Role
    email_verified: bool
    is_active: bool
    created_at: datetime | None = None


class UserEnvelope(CamelModel):
    """Single-user response body."""

    user: UserPublic


class UserUpdateResponse(CamelModel):
    """Response after a profile or admin update."""

    message: str
    user: UserPublic


class ProfileUpdate(CamelModel):
    """Self-service profile update. Omitted fields are left unchanged."""

    name: str | None = None
    email: str | None = None

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str | None) -> str | None:
        """Validate name when provided."""
        return validate_name(v) if v is not None else v

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str | None) -> str | None:
        """Normalize email when provided."""
        return validate_and_normalize_email(v) if v is not None else v


class PasswordChange(CamelModel):
    """Change password with the current one."""

    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def check_new_password(cls, v: str) -> str:
        """Enforce password length bounds."""
        return validate_password(v)


class AdminUserUpdate(ProfileUpdate):
    """Admin update of another user."""

    role: Role | None = None
    is_active: bool | None = None


class Pagination(CamelModel):
    """Pagination metadata for list responses."""

    page: int
    limit: int
    total: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class UserListResponse(CamelModel):
    """Paginated admin user listing."""

    users: list[UserPublic]
    pagination: Pagination
