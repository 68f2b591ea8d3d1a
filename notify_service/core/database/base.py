"""Declarative base and column mixins shared by the notification tables.

    class Notification(UUIDTimestampedBase, TenantMixin):
        __tablename__ = "notifications"
        subject: Mapped[str] = mapped_column(String(255))
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, MetaData, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from SQLite.

    PostgreSQL returns aware values already; comparisons against ``utcnow()``
    need both sides aware.
    """
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class UUIDPKMixin:
    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)


class TimestampMixin:
    """``created_at``/``updated_at`` with both ORM and server-side defaults."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


class TenantMixin:
    """Nullable store scope; ``None`` marks a platform-level row.

    There is no foreign key because tenant ids belong to the host platform.
    """

    tenant_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)


class UUIDTimestampedBase(Base, UUIDPKMixin, TimestampMixin):
    __abstract__ = True


__all__ = [
    "NAMING_CONVENTION",
    "Base",
    "TenantMixin",
    "TimestampMixin",
    "UUIDPKMixin",
    "UUIDTimestampedBase",
    "as_utc",
    "utcnow",
]
