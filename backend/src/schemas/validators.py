"""
Shared validation functions for Pydantic schemas.

Used by the auth request schemas and the profile/admin update schemas.
"""
import re

# Deliberately loose: something@something.tld with no whitespace.
# Deliverability is proven by the verification email, not by this pattern.
EMAIL_PATTERN = re.compile(r"^\S+@\S+\.\S+$")

MIN_PASSWORD_LENGTH = 6
# bcrypt ignores everything past 72 bytes
MAX_PASSWORD_LENGTH = 72
MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 100
MAX_EMAIL_LENGTH = 255


def validate_and_normalize_email(email: str) -> str:
    """
    Normalize and validate an email address.

    Returns:
        The normalized email (trimmed, lowercase).

    Raises:
        ValueError: If the email is empty or malformed.
    """
    normalized = email.strip().lower()
    if not normalized:
        raise ValueError("Email is required")
    if len(normalized) > MAX_EMAIL_LENGTH or not EMAIL_PATTERN.match(normalized):
        raise ValueError("Please provide a valid email address")
    return normalized


def validate_name(name: str) -> str:
    """Trim a display name and check its length."""
    stripped = name.strip()
    if not stripped:
        raise ValueError("Name is required")
    if not MIN_NAME_LENGTH <= len(stripped) <= MAX_NAME_LENGTH:
        raise ValueError(
            f"Name must be between {MIN_NAME_LENGTH} and {MAX_NAME_LENGTH} characters",
        )
    return stripped


def validate_password(password: str) -> str:
    """Check password length bounds."""
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if len(password) > MAX_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_LENGTH} characters long")
    return password
