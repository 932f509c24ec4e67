"""Appointment service - booking, rescheduling and cancellation rules"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import APPOINTMENT_DURATION_MINUTES, MIN_MODIFICATION_HOURS, STALE_PENDING_GRACE_MINUTES
from ...models import APPOINTMENT_OVERLAP_CONSTRAINT, Appointment, AppointmentState
from ...shared.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from ...shared.timeutils import clinic_date, to_utc_naive, utcnow
from ..scheduling.availability import ScheduleResolver
from ..scheduling.repository import ScheduleRepository
from .cache_invalidation import AppointmentCacheInvalidator, AppointmentEvent, EventKind
from .queries import to_appointment_response
from .repository import AppointmentRepository
from .schemas import AppointmentCreate, AppointmentResponse, AppointmentUpdate, MessageResponse

logger = logging.getLogger(__name__)

SLOT_LENGTH = timedelta(minutes=APPOINTMENT_DURATION_MINUTES)
MIN_NOTICE = timedelta(hours=MIN_MODIFICATION_HOURS)

# Markers of the storage-level double-booking guards in driver error messages
_OVERLAP_VIOLATION_MARKERS = (
    APPOINTMENT_OVERLAP_CONSTRAINT,
    "uq_appointments_doctor_start_active",
    "appointments.doctor_id, appointments.start_at",
)


def is_overlap_violation(error: IntegrityError) -> bool:
    message = str(error.orig)
    return any(marker in message for marker in _OVERLAP_VIOLATION_MARKERS)


class BookingService:
    """
    Write side of the appointments domain.

    Every check-then-write runs in one transaction that holds the doctor's
    row lock; the partial unique index (and the exclusion constraint on
    PostgreSQL) rejects whatever still slips through. Cache invalidation runs
    after commit.
    """

    def __init__(
        self,
        db: AsyncSession,
        resolver: ScheduleResolver,
        invalidator: AppointmentCacheInvalidator,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.resolver = resolver
        self.invalidator = invalidator
        self.clock = clock
        self.repo = AppointmentRepository()
        self.schedule_repo = ScheduleRepository()

    async def create_appointment(self, patient_id: int, data: AppointmentCreate) -> AppointmentResponse:
        logger.info(f"📥 Booking appointment for patient {patient_id} with doctor {data.doctorId}")
        start = to_utc_naive(data.start)

        await self.resolver.ensure_doctor(data.doctorId, for_update=True)
        if not await self.repo.patient_exists(self.db, patient_id):
            raise NotFoundError(f"Patient {patient_id} not found")
        if start <= self.clock():
            raise BadRequestError("The appointment date must be in the future")
        await self._ensure_no_overlap(data.doctorId, start)

        try:
            appointment = await self.repo.create(
                self.db,
                created_at=self.clock(),
                start_at=start,
                end_at=start + SLOT_LENGTH,
                telephonic=data.telephonic,
                state=AppointmentState.PENDING.value,
                patient_id=patient_id,
                doctor_id=data.doctorId,
            )
        except IntegrityError as e:
            await self._raise_conflict_or_reraise(e)

        logger.info(f"✅ Appointment {appointment.id} booked for {appointment.start_at.isoformat()}")
        await self.invalidator.invalidate(self._event(EventKind.CREATED, appointment))
        return to_appointment_response(appointment)

    async def update_appointment(
        self, appointment_id: int, requester_id: int, data: AppointmentUpdate
    ) -> AppointmentResponse:
        appointment = await self._get_modifiable(appointment_id, requester_id)

        if not data.has_changes():
            raise BadRequestError("Provide at least one field to update")

        old_date = clinic_date(appointment.start_at)
        new_start: Optional[datetime] = None
        if data.start is not None:
            new_start = to_utc_naive(data.start)
            if new_start <= self.clock():
                raise BadRequestError("The appointment date must be in the future")
            await self.resolver.ensure_doctor(appointment.doctor_id, for_update=True)
            await self._ensure_no_overlap(appointment.doctor_id, new_start, exclude_id=appointment.id)
            appointment.start_at = new_start
            appointment.end_at = new_start + SLOT_LENGTH
        if data.telephonic is not None:
            appointment.telephonic = data.telephonic

        try:
            appointment = await self.repo.save(self.db, appointment)
        except IntegrityError as e:
            await self._raise_conflict_or_reraise(e)

        logger.info(f"✅ Appointment {appointment_id} updated by patient {requester_id}")
        await self.invalidator.invalidate(self._event(EventKind.UPDATED, appointment, old_date))
        return to_appointment_response(appointment)

    async def cancel_appointment(self, appointment_id: int, requester_id: int) -> MessageResponse:
        appointment = await self._get_modifiable(appointment_id, requester_id)

        appointment.state = AppointmentState.CANCELLED.value
        appointment = await self.repo.save(self.db, appointment)

        logger.info(f"🗑️ Appointment {appointment_id} cancelled by patient {requester_id}")
        await self.invalidator.invalidate(self._event(EventKind.CANCELLED, appointment))
        return MessageResponse(message="Appointment cancelled successfully")

    async def mark_attended(self, appointment_id: int, doctor_id: int) -> AppointmentResponse:
        """Entry point for the clinical encounter workflow once the visit is recorded"""
        appointment = await self._get_existing(appointment_id)
        if appointment.doctor_id != doctor_id:
            raise ForbiddenError("Only the appointment's doctor can mark it attended")
        if appointment.state != AppointmentState.PENDING.value:
            raise BadRequestError("Only pending appointments can be marked attended")

        appointment.state = AppointmentState.ATTENDED.value
        appointment = await self.repo.save(self.db, appointment)

        logger.info(f"✅ Appointment {appointment_id} marked attended by doctor {doctor_id}")
        await self.invalidator.invalidate(self._event(EventKind.ATTENDED, appointment))
        return to_appointment_response(appointment)

    async def expire_stale_appointments(self) -> int:
        """Cancel pending appointments whose start passed more than the grace period ago"""
        cutoff = self.clock() - timedelta(minutes=STALE_PENDING_GRACE_MINUTES)
        stale = await self.repo.list_stale_pending(self.db, cutoff)
        if not stale:
            return 0

        for appointment in stale:
            appointment.state = AppointmentState.CANCELLED.value
        await self.db.commit()

        for appointment in stale:
            await self.invalidator.invalidate(self._event(EventKind.CANCELLED, appointment))

        logger.info(f"🕒 Cancelled {len(stale)} stale pending appointments (start before {cutoff.isoformat()})")
        return len(stale)

    async def _get_existing(self, appointment_id: int) -> Appointment:
        appointment = await self.repo.get_by_id(self.db, appointment_id)
        if not appointment:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    async def _get_modifiable(self, appointment_id: int, requester_id: int) -> Appointment:
        """Existence, ownership, pending state and the notice window, in that order"""
        appointment = await self._get_existing(appointment_id)
        if appointment.patient_id != requester_id:
            logger.warning(f"⚠️ User {requester_id} tried to modify appointment {appointment_id}")
            raise ForbiddenError("You can only modify your own appointments")
        if appointment.state != AppointmentState.PENDING.value:
            raise BadRequestError("Only pending appointments can be modified")
        if appointment.start_at - self.clock() < MIN_NOTICE:
            raise BadRequestError(f"Modifications require at least {MIN_MODIFICATION_HOURS} hours notice")
        return appointment

    async def _ensure_no_overlap(self, doctor_id: int, start: datetime, exclude_id: Optional[int] = None) -> None:
        overlapping = await self.schedule_repo.get_active_appointments_between(
            self.db, doctor_id, start, start + SLOT_LENGTH, exclude_id=exclude_id
        )
        if overlapping:
            logger.warning(f"⚠️ Doctor {doctor_id} already booked at {start.isoformat()}")
            raise ConflictError("The doctor already has an appointment at that time")

    async def _raise_conflict_or_reraise(self, error: IntegrityError) -> None:
        await self.db.rollback()
        if is_overlap_violation(error):
            logger.warning(f"⚠️ Double booking rejected by the database: {error.orig}")
            raise ConflictError("The doctor already has an appointment at that time") from error
        raise error

    @staticmethod
    def _event(kind: EventKind, appointment: Appointment, *extra_dates) -> AppointmentEvent:
        dates = tuple(dict.fromkeys([*extra_dates, clinic_date(appointment.start_at)]))
        return AppointmentEvent(
            kind=kind,
            appointment_id=appointment.id,
            patient_id=appointment.patient_id,
            doctor_id=appointment.doctor_id,
            dates=dates,
        )
