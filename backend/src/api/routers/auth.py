"""Authentication endpoints."""
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import (
    auth_rate_limit,
    get_context,
    get_current_user,
    get_read_session,
    get_write_session,
    password_reset_rate_limit,
)
from core.context import ServiceContext
from core.response_cache import cached, key_by_principal
from models.user import User
from schemas.auth import (
    AuthResponse,
    EmailRequest,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    VerifyEmailRequest,
)
from schemas.user import UserEnvelope, UserPublic
from services import auth_service

router = APIRouter(prefix="/auth", tags=["auth"])


def _auth_response(message: str, result: auth_service.AuthResult) -> AuthResponse:
    return AuthResponse(
        message=message,
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        user=UserPublic.model_validate(result.user),
    )


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=201,
    dependencies=[Depends(auth_rate_limit)],
)
async def register(
    data: RegisterRequest,
    context: ServiceContext = Depends(get_context),
    read_db: AsyncSession = Depends(get_read_session),
    write_db: AsyncSession = Depends(get_write_session),
) -> AuthResponse:
    """
    Create an account.

    Returns an access token, a refresh token and the public user. A
    verification email is queued.
    """
    result = await auth_service.register(context, read_db, write_db, data)
    return _auth_response("User registered successfully", result)


@router.post("/login", response_model=AuthResponse, dependencies=[Depends(auth_rate_limit)])
async def login(
    data: LoginRequest,
    context: ServiceContext = Depends(get_context),
    write_db: AsyncSession = Depends(get_write_session),
) -> AuthResponse:
    """Sign in with email and password."""
    result = await auth_service.login(context, write_db, data)
    return _auth_response("Login successful", result)


@router.post("/refresh", response_model=TokenResponse, dependencies=[Depends(auth_rate_limit)])
async def refresh(
    data: RefreshRequest | None = None,
    context: ServiceContext = Depends(get_context),
    write_db: AsyncSession = Depends(get_write_session),
) -> TokenResponse:
    """
    Exchange a refresh token for a new token pair.

    The presented refresh token is invalidated by the exchange.
    """
    tokens = await auth_service.refresh(
        context, write_db, data.refresh_token if data else None,
    )
    return TokenResponse(
        message="Token refreshed successfully",
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    dependencies=[Depends(password_reset_rate_limit)],
)
async def forgot_password(
    data: EmailRequest,
    context: ServiceContext = Depends(get_context),
    read_db: AsyncSession = Depends(get_read_session),
    write_db: AsyncSession = Depends(get_write_session),
) -> MessageResponse:
    """Request a password reset email. The response never reveals whether the email exists."""
    message = await auth_service.forgot_password(context, read_db, write_db, data)
    return MessageResponse(message=message)


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    dependencies=[Depends(password_reset_rate_limit)],
)
async def reset_password(
    data: ResetPasswordRequest,
    context: ServiceContext = Depends(get_context),
    write_db: AsyncSession = Depends(get_write_session),
) -> MessageResponse:
    """Set a new password with a reset token. Signs out every existing session."""
    await auth_service.reset_password(context, write_db, data)
    return MessageResponse(message="Password reset successfully")


@router.post("/verify-email", response_model=MessageResponse)
async def verify_email(
    data: VerifyEmailRequest,
    context: ServiceContext = Depends(get_context),
    write_db: AsyncSession = Depends(get_write_session),
) -> MessageResponse:
    """Confirm the email address with a verification token."""
    await auth_service.verify_email(context, write_db, data.token)
    return MessageResponse(message="Email verified successfully")


@router.post(
    "/resend-verification",
    response_model=MessageResponse,
    dependencies=[Depends(password_reset_rate_limit)],
)
async def resend_verification(
    data: EmailRequest,
    context: ServiceContext = Depends(get_context),
    read_db: AsyncSession = Depends(get_read_session),
    write_db: AsyncSession = Depends(get_write_session),
) -> MessageResponse:
    """Queue a new verification email. The response never reveals whether the email exists."""
    message = await auth_service.resend_verification(context, read_db, write_db, data)
    return MessageResponse(message=message)


@router.get("/me", response_model=UserEnvelope)
@cached(ttl=lambda s: s.me_cache_ttl, key_fn=key_by_principal())
async def get_me(
    request: Request,  # noqa: ARG001 - read by the cache decorator
    response: Response,  # noqa: ARG001 - read by the cache decorator
    current_user: User = Depends(get_current_user),
) -> UserEnvelope:
    """Get the current user. Cached per user; see the X-Cache header."""
    return UserEnvelope(user=UserPublic.model_validate(current_user))
