"""
Service layer for access, refresh and one-time tokens.

Access tokens are stateless signed JWTs. Refresh, password-reset and
email-verification tokens are opaque random strings; only their SHA-256 hashes
are stored on the user row.

Known limitation: there is no refresh-token family tracking. A refresh token
that has already been rotated out is simply not found, which looks the same
as a guessed token; replaying it does not revoke the live session.
"""
import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, UTC
from uuid import UUID

import jwt
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from core.config import Settings
from models.user import User
from services.exceptions import AuthenticationError

ACCESS_TOKEN_TYPE = "access"  # noqa: S105 - claim value, not a secret


@dataclass
class TokenPair:
    """A freshly issued access token and refresh token."""

    access_token: str
    refresh_token: str
    refresh_token_expires_at: datetime


def hash_token(token: str) -> str:
    """Hash a token for comparison against stored hashes."""
    return hashlib.sha256(token.encode()).hexdigest()


def create_access_token(user_id: UUID, settings: Settings) -> str:
    """
    Sign a short-lived access token.

    The payload carries the user id and timing claims only.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "type": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(minutes=settings.access_token_expire_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> dict:
    """
    Verify signature and expiry of an access token.

    Raises:
        AuthenticationError: If the token is expired, malformed or badly signed.
    """
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except jwt.PyJWTError:
        raise AuthenticationError("Invalid token")


def generate_one_time_token(lifetime: timedelta) -> tuple[str, str, datetime]:
    """
    Generate an opaque token with an expiry.

    Returns:
        Tuple of (plaintext, token_hash, expires_at). Only the hash is stored.
    """
    plaintext = secrets.token_urlsafe(32)
    return plaintext, hash_token(plaintext), datetime.now(UTC) + lifetime


def generate_refresh_token(settings: Settings) -> tuple[str, str, datetime]:
    """
    Generate a refresh token (320 bits of entropy) and its expiry.

    Returns:
        Tuple of (plaintext, token_hash, expires_at). The caller persists the
        hash and expiry on the user through the write session.
    """
    plaintext = secrets.token_urlsafe(40)
    expires_at = datetime.now(UTC) + timedelta(days=settings.refresh_token_expire_days)
    return plaintext, hash_token(plaintext), expires_at


async def rotate(
    db: AsyncSession,
    user: User,
    settings: Settings,
    expected_hash: str | None = None,
) -> TokenPair:
    """
    Issue a new access/refresh pair and persist the refresh token.

    The new hash and expiry overwrite the old ones in a single UPDATE, so there
    is never a moment where two refresh tokens are valid for one user. When
    `expected_hash` is given the UPDATE only applies if the stored hash still
    matches it, so two concurrent refreshes with the same token cannot both win.

    Args:
        db: Write session.
        user: User to issue tokens for.
        settings: Application settings.
        expected_hash: Hash of the refresh token being exchanged, if any.

    Raises:
        AuthenticationError: If `expected_hash` no longer matches.

    Note:
        Does not commit. The orchestrator commits once the flow succeeds.
    """
    plaintext, token_hash, expires_at = generate_refresh_token(settings)

    stmt = (
        update(User)
        .where(User.id == user.id)
        .values(refresh_token_hash=token_hash, refresh_token_expires_at=expires_at)
        .execution_options(synchronize_session=False)
    )
    if expected_hash is not None:
        stmt = stmt.where(User.refresh_token_hash == expected_hash)

    result = await db.execute(stmt)
    if result.rowcount != 1:
        raise AuthenticationError("Invalid or expired refresh token")

    # Keep the loaded object in step with the row without marking it dirty
    set_committed_value(user, "refresh_token_hash", token_hash)
    set_committed_value(user, "refresh_token_expires_at", expires_at)

    return TokenPair(
        access_token=create_access_token(user.id, settings),
        refresh_token=plaintext,
        refresh_token_expires_at=expires_at,
    )
