"""SQLAlchemy declarative base with common mixins."""
from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from uuid6 import uuid7


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class UUIDv7Mixin:
    """
    Mixin that adds a UUIDv7 primary key.

    UUIDv7 values are time-ordered, so inserts stay append-friendly on the
    primary key index while ids remain unguessable in URLs and tokens.
    """

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid7)


class TimestampMixin:
    """
    Mixin that adds created_at and updated_at columns.

    All timestamps are timezone-aware (stored as TIMESTAMP WITH TIME ZONE in PostgreSQL).
    updated_at is refreshed by SQLAlchemy on every ORM UPDATE of the row.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
