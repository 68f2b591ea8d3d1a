"""Tenant (store) record owned by the platform's administration layer."""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from notify_service.core.database import Base, TimestampMixin


class Tenant(Base, TimestampMixin):
    """Independently configured store within the platform."""

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    default_locale: Mapped[str | None] = mapped_column(String(10), nullable=True)

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id!r}, name={self.name!r})>"
