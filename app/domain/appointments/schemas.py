"""Appointment domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, model_validator


class AppointmentCreate(BaseModel):
    """Schema for booking an appointment. Naive start values are clinic-local."""

    doctorId: int
    start: datetime
    telephonic: bool = False


class AppointmentUpdate(BaseModel):
    """Schema for rescheduling. The doctor can never be changed."""

    start: Optional[datetime] = None
    telephonic: Optional[bool] = None

    @model_validator(mode="before")
    @classmethod
    def reject_doctor_change(cls, data: Any):
        if isinstance(data, dict) and "doctorId" in data:
            raise ValueError("The doctor of an appointment cannot be changed")
        return data

    def has_changes(self) -> bool:
        return self.start is not None or self.telephonic is not None


class PartyResponse(BaseModel):
    id: int
    firstName: str
    lastName: str


class AttendanceRecordResponse(BaseModel):
    reason: Optional[str] = None
    diagnosis: Optional[str] = None
    observations: Optional[str] = None
    prescription: Optional[dict] = None
    referrals: Optional[list] = None
    createdAt: Optional[datetime] = None


class AppointmentResponse(BaseModel):
    id: int
    start: datetime
    end: datetime
    telephonic: bool
    state: str
    createdAt: datetime
    patient: PartyResponse
    doctor: PartyResponse


class AppointmentDetailResponse(AppointmentResponse):
    attendanceRecord: Optional[AttendanceRecordResponse] = None


class PaginationMeta(BaseModel):
    total: int
    page: int
    limit: int
    totalPages: int


class PaginatedAppointments(BaseModel):
    data: list[AppointmentResponse]
    meta: PaginationMeta


class MessageResponse(BaseModel):
    message: str
