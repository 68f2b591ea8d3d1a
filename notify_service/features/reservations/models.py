"""Reservation tables read by the notification subsystem, plus the reminder ledger."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from notify_service.core.database import UUIDTimestampedBase

from .enums import ReminderStatus, ReservationStatus


class ReservationSettings(UUIDTimestampedBase):
    """Per-tenant reservation options; owned by store administration."""

    __tablename__ = "reservation_settings"

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    accept_reservation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reminder_hours: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Lead time of the reminder before the reservation; 0 disables",
    )

    use_reminder_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    use_reminder_line: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    use_reminder_sms: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    use_reminder_telegram: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    use_reminder_whatsapp: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    use_reminder_push: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class Reservation(UUIDTimestampedBase):
    __tablename__ = "reservations"

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[int] = mapped_column(
        Integer, nullable=False, default=ReservationStatus.PENDING.value
    )
    reservation_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    facility_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    party_size: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    message: Mapped[str | None] = mapped_column(Text(), nullable=True)

    __table_args__ = (
        Index("ix_reservations_tenant_time", "tenant_id", "reservation_time"),
    )


class ReminderRecord(UUIDTimestampedBase):
    """One row per reservation that has been reminded.

    The unique ``reservation_id`` is what makes overlapping sweeps safe: the
    second insert fails and the reminder is not sent twice.
    """

    __tablename__ = "reservation_reminders"

    reservation_id: Mapped[UUID] = mapped_column(nullable=False, unique=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notification_id: Mapped[UUID | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ReminderStatus.SENT.value)
    error_message: Mapped[str | None] = mapped_column(Text(), nullable=True)
