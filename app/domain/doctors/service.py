"""Doctor service - catalog listing and availability views"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ...models import Doctor
from ..scheduling.availability import ScheduleResolver
from ..scheduling.schemas import AttendanceDaysResponse, AvailabilityResponse
from ..scheduling.slots import SlotGenerator
from .repository import DoctorRepository
from .schemas import DoctorResponse, SpecialtyResponse

logger = logging.getLogger(__name__)


def to_doctor_response(doctor: Doctor) -> DoctorResponse:
    return DoctorResponse(
        id=doctor.user_id,
        firstName=doctor.user.first_name,
        lastName=doctor.user.last_name,
        email=doctor.user.email,
        licenseNumber=doctor.license_number,
        specialties=[SpecialtyResponse(id=s.id, name=s.name) for s in doctor.specialties],
    )


class DoctorService:
    """Service layer for doctor catalog and availability"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = DoctorRepository()
        self.resolver = ScheduleResolver(db)
        self.slots = SlotGenerator(db, self.resolver)

    async def list_doctors(self, specialty_id: Optional[int] = None) -> list[DoctorResponse]:
        doctors = await self.repo.list_doctors(self.db, specialty_id)
        return [to_doctor_response(d) for d in doctors]

    async def get_availability(self, doctor_id: int, day: date) -> AvailabilityResponse:
        return await self.slots.generate(doctor_id, day)

    async def get_attendance_days(self, doctor_id: int) -> AttendanceDaysResponse:
        days = await self.resolver.attendance_days(doctor_id)
        return AttendanceDaysResponse(doctorId=doctor_id, days=days)
