"""Shared exceptions for service layer operations."""
from typing import Any


class ServiceError(Exception):
    """
    Base class for errors that map onto an HTTP response.

    `details` is merged into the JSON error body next to `message`, so it must
    only contain data that is safe to show to the client.
    """

    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(ServiceError):
    """Malformed or missing input."""

    status_code = 400

    def __init__(self, message: str, errors: list[dict[str, str]] | None = None) -> None:
        super().__init__(message, {"errors": errors or []})
        self.errors = errors or []


class AuthenticationError(ServiceError):
    """
    Bad credentials or a bad/expired token.

    Messages stay generic: callers must never reveal which half of a
    credential pair was wrong.
    """

    status_code = 401


class AuthorizationError(ServiceError):
    """Authenticated, but the principal lacks the required role."""

    status_code = 403

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message)


class NotFoundError(ServiceError):
    """Referenced entity is absent. Only used for direct-id admin lookups."""

    status_code = 404


class ConflictError(ServiceError):
    """A unique field already holds the submitted value."""

    status_code = 409

    def __init__(self, message: str, field: str, status_code: int | None = None) -> None:
        super().__init__(message, {"field": field})
        self.field = field
        if status_code is not None:
            self.status_code = status_code


class DependencyDegradedError(ServiceError):
    """The store or cache needed for this operation is unreachable."""

    status_code = 500
