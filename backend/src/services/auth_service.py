"""
Authentication flows: register, login, refresh, password reset, email
verification and the current-user read.

Each flow is handed both a read session and a write session and chooses per
step. Anything that must observe a write made moments ago (credential checks,
token lookups) goes to the write session; pre-checks and anti-enumeration
lookups use the read session.

Mutating flows follow one order: flush, commit, invalidate cache, enqueue
events, return. The commit happens before invalidation so a concurrent reader
cannot repopulate the cache from the pre-commit row.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from core.context import ServiceContext
from core.passwords import burn_password_check, hash_password, verify_password
from core.response_cache import me_cache_pattern, users_cache_pattern
from models.user import User
from schemas.auth import (
    EmailRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
)
from services import notifications, token_service, user_service
from services.exceptions import AuthenticationError, ConflictError, ValidationError
from services.token_service import TokenPair

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
ACCOUNT_DEACTIVATED = "Account is deactivated"
FORGOT_PASSWORD_MESSAGE = (
    "If an account with that email exists, a password reset link has been sent."
)
RESEND_VERIFICATION_MESSAGE = (
    "If an account with that email exists and is not verified, "
    "a verification email has been sent."
)


@dataclass
class AuthResult:
    """A user together with the tokens just issued to them."""

    user: User
    tokens: TokenPair


def _verification_lifetime(context: ServiceContext) -> timedelta:
    return timedelta(hours=context.settings.email_verification_expire_hours)


def _issue_verification_token(context: ServiceContext, user: User) -> str:
    """Overwrite the user's verification token and return the plaintext."""
    plaintext, token_hash, expires_at = token_service.generate_one_time_token(
        _verification_lifetime(context),
    )
    user.email_verification_token_hash = token_hash
    user.email_verification_expires_at = expires_at
    return plaintext


async def register(
    context: ServiceContext,
    read_db: AsyncSession,
    write_db: AsyncSession,
    data: RegisterRequest,
) -> AuthResult:
    """
    Create an account and sign it in.

    The read-session pre-check only gives a fast answer for the common case.
    Two concurrent registrations can both pass it; the unique index then
    rejects the second INSERT, which surfaces as the same ConflictError.

    Raises:
        ConflictError: (HTTP 400) If the email is taken.
    """
    settings = context.settings
    if await user_service.get_by_email(read_db, data.email) is not None:
        raise user_service.email_conflict(status_code=400)

    password_hash = await hash_password(data.password, settings.bcrypt_rounds)
    try:
        user = await user_service.create_user(write_db, data.email, password_hash, data.name)
    except ConflictError as e:
        raise ConflictError(e.message, field=e.field, status_code=400) from e

    verification_token = _issue_verification_token(context, user)
    tokens = await token_service.rotate(write_db, user, settings)
    await write_db.commit()

    await context.cache.invalidate(users_cache_pattern())
    await notifications.dispatch(
        context.events,
        notifications.welcome_email(user),
        notifications.verification_email(user, verification_token, settings.app_url),
        notifications.welcome_push(user),
        notifications.analytics("user_registered", user, {"email": user.email}),
    )
    logger.info("user_registered", extra={"user_id": str(user.id)})
    return AuthResult(user=user, tokens=tokens)


async def login(
    context: ServiceContext,
    write_db: AsyncSession,
    data: LoginRequest,
) -> AuthResult:
    """
    Check credentials and issue a new token pair.

    The lookup goes to the write session so a password reset committed a
    moment ago is already visible. An unknown email still pays for one bcrypt
    comparison so response time does not reveal whether the account exists.

    Raises:
        AuthenticationError: On unknown email, wrong password, or deactivated account.
    """
    settings = context.settings
    user = await user_service.get_by_email(write_db, data.email)
    if user is None:
        await burn_password_check(data.password, settings.bcrypt_rounds)
        raise AuthenticationError(INVALID_CREDENTIALS)
    if not user.is_active:
        raise AuthenticationError(ACCOUNT_DEACTIVATED)
    if not await verify_password(data.password, user.password_hash):
        raise AuthenticationError(INVALID_CREDENTIALS)

    tokens = await token_service.rotate(write_db, user, settings)
    await write_db.commit()

    await notifications.dispatch(
        context.events,
        notifications.analytics("user_login", user, {"email": user.email}),
    )
    logger.info("user_login", extra={"user_id": str(user.id)})
    return AuthResult(user=user, tokens=tokens)


async def refresh(
    context: ServiceContext,
    write_db: AsyncSession,
    refresh_token: str | None,
) -> TokenPair:
    """
    Exchange a refresh token for a new pair (rotation).

    The presented token stops working the moment this commits. Two concurrent
    refreshes with the same token race on a conditional UPDATE; exactly one wins.

    Raises:
        ValidationError: If no token was presented.
        AuthenticationError: If the token is unknown, expired, or already rotated.
    """
    if not refresh_token or not refresh_token.strip():
        raise ValidationError("Refresh token is required")

    token_hash = token_service.hash_token(refresh_token.strip())
    user = await user_service.get_by_refresh_token(write_db, token_hash)
    if user is None or not user.is_active:
        raise AuthenticationError("Invalid or expired refresh token")

    tokens = await token_service.rotate(
        write_db, user, context.settings, expected_hash=token_hash,
    )
    await write_db.commit()
    return tokens


async def forgot_password(
    context: ServiceContext,
    read_db: AsyncSession,
    write_db: AsyncSession,
    data: EmailRequest,
) -> str:
    """
    Start a password reset.

    Always returns the same message so the response never reveals whether
    the email is registered.
    """
    user = await user_service.get_by_email(read_db, data.email)
    if user is None:
        logger.info("password_reset_unknown_email")
        return FORGOT_PASSWORD_MESSAGE

    target = await user_service.get_by_id(write_db, user.id)
    if target is None:
        return FORGOT_PASSWORD_MESSAGE

    plaintext, token_hash, expires_at = token_service.generate_one_time_token(
        timedelta(hours=context.settings.password_reset_expire_hours),
    )
    target.password_reset_token_hash = token_hash
    target.password_reset_expires_at = expires_at
    await write_db.commit()

    await notifications.dispatch(
        context.events,
        notifications.password_reset_email(target, plaintext, context.settings.app_url),
    )
    logger.info("password_reset_requested", extra={"user_id": str(target.id)})
    return FORGOT_PASSWORD_MESSAGE


async def reset_password(
    context: ServiceContext,
    write_db: AsyncSession,
    data: ResetPasswordRequest,
) -> None:
    """
    Set a new password with a one-time reset token.

    Clears the reset token and the refresh token in the same commit, so every
    session issued before the reset stops working.

    Raises:
        ValidationError: If the token is unknown or expired.
    """
    user = await user_service.get_by_password_reset_token(
        write_db, token_service.hash_token(data.token),
    )
    if user is None:
        raise ValidationError("Invalid or expired reset token")

    user.password_hash = await hash_password(data.password, context.settings.bcrypt_rounds)
    user.password_reset_token_hash = None
    user.password_reset_expires_at = None
    user.refresh_token_hash = None
    user.refresh_token_expires_at = None
    await write_db.commit()

    await context.cache.invalidate(me_cache_pattern(user.id))
    await notifications.dispatch(context.events, notifications.password_reset_push(user))
    logger.info("password_reset_completed", extra={"user_id": str(user.id)})


async def verify_email(
    context: ServiceContext,
    write_db: AsyncSession,
    token: str,
) -> None:
    """
    Mark the email verified with a one-time verification token.

    Raises:
        ValidationError: If the token is unknown or expired.
    """
    user = await user_service.get_by_verification_token(
        write_db, token_service.hash_token(token),
    )
    if user is None:
        raise ValidationError("Invalid or expired verification token")

    user.email_verified = True
    user.email_verification_token_hash = None
    user.email_verification_expires_at = None
    await write_db.commit()

    await context.cache.invalidate(me_cache_pattern(user.id))
    await notifications.dispatch(context.events, notifications.email_verified_push(user))
    logger.info("email_verified", extra={"user_id": str(user.id)})


async def resend_verification(
    context: ServiceContext,
    read_db: AsyncSession,
    write_db: AsyncSession,
    data: EmailRequest,
) -> str:
    """
    Send a fresh verification email.

    Unknown and already-verified emails get the same response as a successful
    resend.
    """
    user = await user_service.get_by_email(read_db, data.email)
    if user is None or user.email_verified:
        return RESEND_VERIFICATION_MESSAGE

    target = await user_service.get_by_id(write_db, user.id)
    if target is None or target.email_verified:
        return RESEND_VERIFICATION_MESSAGE

    plaintext = _issue_verification_token(context, target)
    await write_db.commit()

    await notifications.dispatch(
        context.events,
        notifications.verification_email(target, plaintext, context.settings.app_url),
    )
    return RESEND_VERIFICATION_MESSAGE
