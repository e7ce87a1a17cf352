"""Tests for request schema validation."""
import pytest
from pydantic import ValidationError

from schemas.auth import LoginRequest, RefreshRequest, RegisterRequest
from schemas.user import AdminUserUpdate, PasswordChange, ProfileUpdate
from schemas.validators import (
    validate_and_normalize_email,
    validate_name,
    validate_password,
)


class TestValidators:
    """Tests for the shared field validators."""

    @pytest.mark.parametrize("email", ["a@b.co", "  Mixed.Case@Example.ORG  ", "x+tag@sub.domain.io"])
    def test__email__accepted_and_normalized(self, email: str) -> None:
        """Valid emails come back trimmed and lower-cased."""
        assert validate_and_normalize_email(email) == email.strip().lower()

    @pytest.mark.parametrize("email", ["plain", "no-at.example.com", "a@b", "a b@c.de"])
    def test__email__rejected(self, email: str) -> None:
        """Malformed emails raise."""
        with pytest.raises(ValueError, match="valid email"):
            validate_and_normalize_email(email)

    def test__email__blank_is_required(self) -> None:
        """Whitespace only counts as missing."""
        with pytest.raises(ValueError, match="Email is required"):
            validate_and_normalize_email("   ")

    def test__email__too_long(self) -> None:
        """Emails over 255 characters are refused."""
        with pytest.raises(ValueError):
            validate_and_normalize_email("a" * 250 + "@example.com")

    def test__name__bounds(self) -> None:
        """Names are trimmed and must be 2 to 100 characters."""
        assert validate_name("  Al ") == "Al"
        assert validate_name("x" * 100) == "x" * 100
        with pytest.raises(ValueError):
            validate_name("A")
        with pytest.raises(ValueError):
            validate_name("x" * 101)
        with pytest.raises(ValueError, match="Name is required"):
            validate_name("   ")

    def test__password__bounds(self) -> None:
        """Passwords must be 6 to 72 characters and are not trimmed."""
        assert validate_password("      ") == "      "
        assert validate_password("x" * 72) == "x" * 72
        with pytest.raises(ValueError, match="at least 6"):
            validate_password("12345")
        with pytest.raises(ValueError, match="at most 72"):
            validate_password("x" * 73)


class TestRequestSchemas:
    """Tests for request models built on the validators."""

    def test__register__camel_case_not_required(self) -> None:
        """Single-word fields parse and normalize."""
        data = RegisterRequest(email="A@B.co", password="secret1", name=" Ann ")
        assert data.email == "a@b.co"
        assert data.name == "Ann"

    def test__login__empty_password_rejected(self) -> None:
        """Login only requires a non-empty password."""
        assert LoginRequest(email="a@b.co", password="x").password == "x"
        with pytest.raises(ValidationError):
            LoginRequest(email="a@b.co", password="")

    def test__refresh__accepts_camel_case_alias(self) -> None:
        """The token arrives as refreshToken."""
        assert RefreshRequest.model_validate({"refreshToken": "t"}).refresh_token == "t"
        assert RefreshRequest.model_validate({}).refresh_token is None

    def test__password_change__validates_new_only(self) -> None:
        """The current password is checked against the hash, not the length rules."""
        data = PasswordChange.model_validate({"currentPassword": "x", "newPassword": "newpass"})
        assert data.current_password == "x"
        with pytest.raises(ValidationError):
            PasswordChange.model_validate({"currentPassword": "x", "newPassword": "short"})

    def test__profile_update__all_optional(self) -> None:
        """An empty update is valid and leaves everything unset."""
        data = ProfileUpdate.model_validate({})
        assert data.name is None
        assert data.email is None

    def test__admin_update__is_active_alias(self) -> None:
        """Admin updates accept isActive and role."""
        data = AdminUserUpdate.model_validate({"isActive": False, "role": "admin"})
        assert data.is_active is False
        assert data.role == "admin"

    def test__admin_update__unknown_role_rejected(self) -> None:
        """Only defined roles are accepted."""
        with pytest.raises(ValidationError):
            AdminUserUpdate.model_validate({"role": "superuser"})
