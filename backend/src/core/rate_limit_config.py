"""
Rate limiting configuration and types.

This module contains the policy configuration for rate limiting - the "what" limits
to apply, separate from the "how" (enforcement logic in rate_limiter.py).

To adjust rate limits, modify RATE_LIMITS below.
"""
from dataclasses import dataclass
from enum import Enum

from services.exceptions import ServiceError


class RateLimitPolicy(Enum):
    """Named group of endpoints sharing one limit."""

    AUTH = "auth"  # register, login, refresh
    PASSWORD_RESET = "password_reset"  # forgot/reset password, resend verification


@dataclass
class RateLimitConfig:
    """Rate limit configuration for one policy."""

    max_requests: int
    window_seconds: int
    message: str


@dataclass
class RateLimitResult:
    """Result of a rate limit check with all info needed for headers."""

    allowed: bool
    limit: int  # Max requests in current window
    remaining: int  # Requests remaining in current window
    reset: int  # Unix timestamp when window resets
    retry_after: int  # Seconds until retry allowed (0 if allowed)


class RateLimitExceededError(ServiceError):
    """Raised when rate limit is exceeded."""

    status_code = 429

    def __init__(self, result: RateLimitResult, message: str = "Rate limit exceeded") -> None:
        self.result = result
        super().__init__(message, {"retryAfter": result.retry_after})


# ---------------------------------------------------------------------------
# Rate Limit Policy Configuration
# ---------------------------------------------------------------------------
# Limits are per client (user id when authenticated, otherwise client IP),
# counted over a sliding window.

RATE_LIMITS: dict[RateLimitPolicy, RateLimitConfig] = {
    RateLimitPolicy.AUTH: RateLimitConfig(
        max_requests=30,
        window_seconds=15 * 60,
        message="Too many authentication attempts, please try again later.",
    ),
    RateLimitPolicy.PASSWORD_RESET: RateLimitConfig(
        max_requests=3,
        window_seconds=60 * 60,
        message="Too many password reset requests, please try again later.",
    ),
}
