"""SQLAlchemy models."""
from models.base import Base, TimestampMixin, UUIDv7Mixin
from models.user import Role, User

__all__ = [
    "Base",
    "Role",
    "TimestampMixin",
    "UUIDv7Mixin",
    "User",
]
