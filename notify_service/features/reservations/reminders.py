"""Periodic sweep that sends reservation reminders.

A reservation is due when its time falls within ``window`` of
``now + reminder_hours``. Each reminder is recorded in
``reservation_reminders``; the unique reservation id on that table makes
concurrent sweeps safe.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from notify_service.core.database import DuplicateError, utcnow
from notify_service.core.models import User
from notify_service.core.services.base import BaseService
from notify_service.features.notifications.metrics import reminder_processed_total
from notify_service.infra.logging import log_context

from .enums import ReminderStatus
from .events import ReservationEvent, ReservationEventContext
from .models import ReminderRecord
from .repository import (
    ReminderRecordRepository,
    ReservationRepository,
    get_reminder_repository,
    get_reservation_repository,
)

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from .events import ReservationNotificationRouter
    from .models import Reservation, ReservationSettings


@dataclass(frozen=True, slots=True)
class ReminderSweepResult:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    errors: tuple[str, ...] = ()


class ReminderProcessor(BaseService):
    """Finds due reservations and hands each one to the event router."""

    def __init__(
        self,
        router: ReservationNotificationRouter,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        window_minutes: int = 5,
        reservation_repository: ReservationRepository | None = None,
        reminder_repository: ReminderRecordRepository | None = None,
    ) -> None:
        super().__init__()
        self._router = router
        self._session_factory = session_factory
        self._window = timedelta(minutes=window_minutes)
        self._reservations = reservation_repository or get_reservation_repository()
        self._reminders = reminder_repository or get_reminder_repository()

    async def process_due_reminders(self, now: datetime | None = None) -> ReminderSweepResult:
        """Send every due reminder once.

        Args:
            now: Reference time; defaults to the current UTC time

        Returns:
            Counts for the whole sweep; ``errors`` holds one line per failure
        """
        now = now or utcnow()
        processed = sent = failed = skipped = 0
        errors: list[str] = []

        async with self._session_factory() as session:
            tenants = list(await self._reservations.list_reminder_settings(session))
            due: list[tuple[Reservation, ReservationSettings]] = []
            for settings in tenants:
                lead = timedelta(hours=settings.reminder_hours)
                reservations = await self._reservations.list_due_for_reminder(
                    session,
                    settings.tenant_id,
                    now + lead - self._window,
                    now + lead + self._window,
                )
                due.extend((reservation, settings) for reservation in reservations)

        for reservation, settings in due:
            processed += 1
            with log_context(tenant_id=reservation.tenant_id, reservation_id=str(reservation.id)):
                outcome, error = await self._remind(reservation, settings)
            reminder_processed_total.labels(status=outcome).inc()
            if outcome == "sent":
                sent += 1
            elif outcome == "failed":
                failed += 1
                errors.append(f"{reservation.id}: {error}")
            else:
                skipped += 1

        self.logger.info(
            "Reminder sweep finished",
            extra={
                "tenants": len(tenants),
                "processed": processed,
                "sent": sent,
                "failed": failed,
                "skipped": skipped,
                "operation": "reminder.sweep",
            },
        )
        return ReminderSweepResult(
            processed=processed,
            sent=sent,
            failed=failed,
            skipped=skipped,
            errors=tuple(errors),
        )

    async def _remind(
        self, reservation: Reservation, settings: ReservationSettings
    ) -> tuple[str, str | None]:
        """Send and record one reminder; returns (outcome, error)."""
        scheduled_at = reservation.reservation_time - timedelta(hours=settings.reminder_hours)
        notification_id: UUID | None = None
        error: str | None = None

        async with self._session_factory() as session:
            try:
                context = await self._build_context(session, reservation)
                notification_id = await self._router.handle_reminder(session, context)
                await session.commit()
            except Exception as exc:
                await session.rollback()
                notification_id = None
                error = str(exc) or exc.__class__.__name__
                self.logger.exception(
                    "Reminder failed",
                    extra={"reservation_id": str(reservation.id), "operation": "reminder.send"},
                )

        if error is None and notification_id is not None:
            try:
                await self._router.dispatch_committed(notification_id)
            except Exception:
                # The row is committed; the queue sweep still picks it up
                self.logger.exception(
                    "Reminder dispatch failed",
                    extra={
                        "reservation_id": str(reservation.id),
                        "notification_id": str(notification_id),
                        "operation": "reminder.dispatch",
                    },
                )

        if error is not None:
            status, outcome = ReminderStatus.FAILED, "failed"
        elif notification_id is None:
            status, outcome = ReminderStatus.SENT, "skipped"
            error = "no notification created"
        else:
            status, outcome = ReminderStatus.SENT, "sent"

        record = ReminderRecord(
            reservation_id=reservation.id,
            tenant_id=reservation.tenant_id,
            customer_id=reservation.customer_id,
            scheduled_at=scheduled_at,
            sent_at=utcnow(),
            notification_id=notification_id,
            status=status.value,
            error_message=error,
        )
        async with self._session_factory() as session:
            try:
                await self._reminders.record(session, record)
                await session.commit()
            except DuplicateError:
                self.logger.warning(
                    "Reminder already recorded by a concurrent sweep",
                    extra={"reservation_id": str(reservation.id), "operation": "reminder.record"},
                )
                return "skipped", None
        return outcome, error

    @staticmethod
    async def _build_context(
        session: AsyncSession, reservation: Reservation
    ) -> ReservationEventContext:
        customer = None
        if reservation.customer_id:
            customer = await session.get(User, reservation.customer_id)
        return ReservationEventContext(
            reservation_id=reservation.id,
            tenant_id=reservation.tenant_id,
            event=ReservationEvent.REMINDER,
            customer_id=reservation.customer_id,
            customer_name=customer.name if customer else None,
            customer_email=customer.email if customer else None,
            customer_phone=customer.phone_number if customer else None,
            locale=customer.locale if customer else None,
            reservation_time=reservation.reservation_time,
            facility_name=reservation.facility_name,
            party_size=reservation.party_size,
            message=reservation.message,
            new_status=reservation.status,
        )
