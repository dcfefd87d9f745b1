"""Reusable SQLAlchemy mixins for rolegraph models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import Uuid
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from .types import UTCDateTime

__all__ = ["TimestampMixin", "UUIDPrimaryKeyMixin", "generate_uuid7", "utc_now"]


def utc_now() -> datetime:
    return datetime.now(UTC)


def generate_uuid7() -> UUID:
    # uuid.uuid7 ships with Python 3.14.
    return getattr(uuid, "uuid7", uuid.uuid4)()


class UUIDPrimaryKeyMixin:
    """Mixin that supplies a UUIDv7-backed primary key column."""

    @declared_attr.directive
    def id(cls) -> Mapped[UUID]:  # noqa: N805 - SQLAlchemy declared attr
        return mapped_column(
            "id",
            Uuid(),
            primary_key=True,
            default=generate_uuid7,
        )


class TimestampMixin:
    """App-managed UTC timestamps.

    Keeps behavior consistent across SQLite and server databases without relying on triggers.
    """

    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utc_now, onupdate=utc_now
    )
