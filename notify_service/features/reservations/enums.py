"""Reservation enumerations."""

from __future__ import annotations

from enum import IntEnum, StrEnum


class ReservationStatus(IntEnum):
    """Lifecycle of a reservation as stored by the platform."""

    PENDING = 0
    READY_TO_CONFIRM = 10
    READY = 40
    COMPLETED = 50
    CANCELLED = 60
    NO_SHOW = 70


# Reservations in these states still get a reminder
REMINDABLE_STATUSES = (ReservationStatus.READY_TO_CONFIRM, ReservationStatus.READY)


class ReminderStatus(StrEnum):
    SENT = "sent"
    FAILED = "failed"
