"""FastAPI dependencies for injection."""
from core.auth import get_current_user, require_admin
from core.rate_limit_config import RateLimitPolicy
from core.rate_limiter import rate_limit
from db.session import get_context, get_read_session, get_write_session

auth_rate_limit = rate_limit(RateLimitPolicy.AUTH)
password_reset_rate_limit = rate_limit(RateLimitPolicy.PASSWORD_RESET)

__all__ = [
    "auth_rate_limit",
    "get_context",
    "get_current_user",
    "get_read_session",
    "get_write_session",
    "password_reset_rate_limit",
    "require_admin",
]
