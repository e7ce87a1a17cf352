"""Pydantic schemas for the /auth endpoints."""
from pydantic import Field, field_validator

from schemas.user import CamelModel, UserPublic
from schemas.validators import (
    validate_and_normalize_email,
    validate_name,
    validate_password,
)


class RegisterRequest(CamelModel):
    """Registration payload."""

    email: str
    password: str
    name: str

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        """Normalize and validate email."""
        return validate_and_normalize_email(v)

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        """Enforce password length bounds."""
        return validate_password(v)

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        """Trim and bound the display name."""
        return validate_name(v)


class LoginRequest(CamelModel):
    """Login payload."""

    email: str
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        """Normalize and validate email."""
        return validate_and_normalize_email(v)


class RefreshRequest(CamelModel):
    """
    Refresh payload.

    The token is optional at the schema level so a missing token gets the
    dedicated "Refresh token is required" message instead of a field error.
    """

    refresh_token: str | None = None


class EmailRequest(CamelModel):
    """Payload carrying only an email (forgot password, resend verification)."""

    email: str

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        """Normalize and validate email."""
        return validate_and_normalize_email(v)


class ResetPasswordRequest(CamelModel):
    """Reset password with a one-time token."""

    token: str = Field(min_length=1)
    password: str

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        """Enforce password length bounds."""
        return validate_password(v)


class VerifyEmailRequest(CamelModel):
    """Verify email with a one-time token."""

    token: str = Field(min_length=1)


class MessageResponse(CamelModel):
    """Plain message response."""

    message: str


class TokenResponse(CamelModel):
    """Tokens issued by a refresh."""

    message: str
    access_token: str
    refresh_token: str


class AuthResponse(TokenResponse):
    """Tokens plus the public user view, issued by register and login."""

    user: UserPublic
