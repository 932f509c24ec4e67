"""Appointment queries - role-scoped listings and detail views"""

import logging
from datetime import date, datetime
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ...auth import Principal, Role, dispatch_by_role
from ...config import RECENT_APPOINTMENTS_LIMIT, UPCOMING_APPOINTMENTS_LIMIT
from ...models import Appointment, AppointmentState, AttendanceRecord
from ...shared.errors import ForbiddenError, NotFoundError
from ...shared.timeutils import as_utc, day_bounds, utcnow
from ...shared.validators import total_pages, validate_pagination
from .repository import AppointmentRepository
from .schemas import (
    AppointmentDetailResponse,
    AppointmentResponse,
    AttendanceRecordResponse,
    PaginatedAppointments,
    PaginationMeta,
    PartyResponse,
)

logger = logging.getLogger(__name__)

# Column identifying "my appointments" for each role that has its own listing
PARTY_COLUMNS = {
    Role.DOCTOR: Appointment.doctor_id,
    Role.PATIENT: Appointment.patient_id,
}


def to_appointment_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        start=as_utc(appointment.start_at),
        end=as_utc(appointment.end_at),
        telephonic=appointment.telephonic,
        state=appointment.state,
        createdAt=as_utc(appointment.created_at),
        patient=PartyResponse(
            id=appointment.patient_id,
            firstName=appointment.patient.user.first_name,
            lastName=appointment.patient.user.last_name,
        ),
        doctor=PartyResponse(
            id=appointment.doctor_id,
            firstName=appointment.doctor.user.first_name,
            lastName=appointment.doctor.user.last_name,
        ),
    )


def _to_attendance_response(record: Optional[AttendanceRecord]) -> Optional[AttendanceRecordResponse]:
    if record is None:
        return None
    return AttendanceRecordResponse(
        reason=record.reason,
        diagnosis=record.diagnosis,
        observations=record.observations,
        prescription=record.prescription,
        referrals=record.referrals,
        createdAt=as_utc(record.created_at) if record.created_at else None,
    )


def to_detail_response(appointment: Appointment) -> AppointmentDetailResponse:
    return AppointmentDetailResponse(
        **to_appointment_response(appointment).model_dump(),
        attendanceRecord=_to_attendance_response(appointment.attendance_record),
    )


class AppointmentQueryService:
    """Read side of the appointments domain"""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock
        self.repo = AppointmentRepository()

    async def upcoming(self, principal: Principal) -> list[AppointmentResponse]:
        _, party = dispatch_by_role(principal, PARTY_COLUMNS)
        appointments = await self.repo.list_upcoming(
            self.db, party, principal.id, self.clock(), UPCOMING_APPOINTMENTS_LIMIT
        )
        return [to_appointment_response(a) for a in appointments]

    async def recent(self, principal: Principal) -> list[AppointmentResponse]:
        _, party = dispatch_by_role(principal, PARTY_COLUMNS)
        appointments = await self.repo.list_recent_attended(
            self.db, party, principal.id, RECENT_APPOINTMENTS_LIMIT
        )
        return [to_appointment_response(a) for a in appointments]

    async def pending(
        self, principal: Principal, page: Optional[int] = None, limit: Optional[int] = None
    ) -> PaginatedAppointments:
        """Future pending appointments, soonest first"""
        _, party = dispatch_by_role(principal, PARTY_COLUMNS)
        filters = [
            party == principal.id,
            Appointment.state == AppointmentState.PENDING.value,
            Appointment.start_at > self.clock(),
        ]
        return await self._paginate(filters, page, limit, newest_first=False)

    async def attended(
        self, principal: Principal, page: Optional[int] = None, limit: Optional[int] = None
    ) -> PaginatedAppointments:
        _, party = dispatch_by_role(principal, PARTY_COLUMNS)
        filters = [party == principal.id, Appointment.state == AppointmentState.ATTENDED.value]
        return await self._paginate(filters, page, limit)

    async def all(
        self, principal: Principal, page: Optional[int] = None, limit: Optional[int] = None
    ) -> PaginatedAppointments:
        """Doctors see their own appointments in any state; admins see the whole system"""
        role, _ = dispatch_by_role(principal, {Role.ADMIN: None, Role.DOCTOR: Appointment.doctor_id})
        filters = [] if role == Role.ADMIN else [Appointment.doctor_id == principal.id]
        return await self._paginate(filters, page, limit)

    async def by_date(self, doctor_id: int, day: date) -> list[AppointmentResponse]:
        window_start, window_end = day_bounds(day)
        appointments = await self.repo.list_for_doctor_between(self.db, doctor_id, window_start, window_end)
        return [to_appointment_response(a) for a in appointments]

    async def get_detail(self, appointment_id: int, principal: Principal) -> AppointmentDetailResponse:
        appointment = await self.repo.get_by_id(self.db, appointment_id)
        if not appointment:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        if principal.id not in (appointment.patient_id, appointment.doctor_id):
            logger.warning(f"⚠️ User {principal.id} denied access to appointment {appointment_id}")
            raise ForbiddenError("You are not a party to this appointment")
        return to_detail_response(appointment)

    async def _paginate(
        self, filters: list, page: Optional[int], limit: Optional[int], newest_first: bool = True
    ) -> PaginatedAppointments:
        page, limit = validate_pagination(page, limit)
        appointments, total = await self.repo.paginate(self.db, filters, page, limit, newest_first)
        return PaginatedAppointments(
            data=[to_appointment_response(a) for a in appointments],
            meta=PaginationMeta(total=total, page=page, limit=limit, totalPages=total_pages(total, limit)),
        )
