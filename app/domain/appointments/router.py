"""Appointment router - FastAPI endpoints for booking and listings"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ...auth import Principal, Role, require_roles
from ...cache import cached_response
from ...config import CACHE_TTL_BY_DATE, CACHE_TTL_DETAIL, CACHE_TTL_LISTINGS
from ...database import get_db
from ...shared.validators import parse_iso_date
from ..scheduling.availability import ScheduleResolver
from .cache_invalidation import AppointmentCacheInvalidator
from .queries import AppointmentQueryService
from .schemas import (
    AppointmentCreate,
    AppointmentDetailResponse,
    AppointmentResponse,
    AppointmentUpdate,
    MessageResponse,
    PaginatedAppointments,
)
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])

patient_only = require_roles(Role.PATIENT)
patient_or_doctor = require_roles(Role.PATIENT, Role.DOCTOR)


def get_booking_service(request: Request, db: AsyncSession = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db, ScheduleResolver(db), AppointmentCacheInvalidator(request.app.state.cache))


def get_query_service(db: AsyncSession = Depends(get_db)) -> AppointmentQueryService:
    """Dependency injection for AppointmentQueryService"""
    return AppointmentQueryService(db)


# ============================================================================
# BOOKING
# ============================================================================


@router.post("", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    principal: Principal = Depends(patient_only),
    service: BookingService = Depends(get_booking_service),
):
    """Book a 30-minute appointment with a doctor"""
    return await service.create_appointment(principal.id, data)


# ============================================================================
# LISTINGS
# ============================================================================


@router.get("/upcoming", response_model=list[AppointmentResponse])
@cached_response(ttl=CACHE_TTL_LISTINGS)
async def get_upcoming(
    request: Request,
    principal: Principal = Depends(patient_or_doctor),
    service: AppointmentQueryService = Depends(get_query_service),
):
    """Next appointments that are not cancelled"""
    return await service.upcoming(principal)


@router.get("/recent", response_model=list[AppointmentResponse])
@cached_response(ttl=CACHE_TTL_LISTINGS)
async def get_recent(
    request: Request,
    principal: Principal = Depends(patient_or_doctor),
    service: AppointmentQueryService = Depends(get_query_service),
):
    """Latest attended appointments"""
    return await service.recent(principal)


@router.get("/pending", response_model=PaginatedAppointments)
@cached_response(ttl=CACHE_TTL_LISTINGS)
async def get_pending(
    request: Request,
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    principal: Principal = Depends(patient_or_doctor),
    service: AppointmentQueryService = Depends(get_query_service),
):
    return await service.pending(principal, page, limit)


@router.get("/attended", response_model=PaginatedAppointments)
@cached_response(ttl=CACHE_TTL_LISTINGS)
async def get_attended(
    request: Request,
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    principal: Principal = Depends(patient_or_doctor),
    service: AppointmentQueryService = Depends(get_query_service),
):
    return await service.attended(principal, page, limit)


@router.get("/all", response_model=PaginatedAppointments)
@cached_response(ttl=CACHE_TTL_LISTINGS)
async def get_all(
    request: Request,
    page: Optional[int] = Query(None),
    limit: Optional[int] = Query(None),
    principal: Principal = Depends(require_roles(Role.DOCTOR, Role.ADMIN)),
    service: AppointmentQueryService = Depends(get_query_service),
):
    """Every appointment of the doctor, or of the whole clinic for admins"""
    return await service.all(principal, page, limit)


@router.get("/by-date", response_model=list[AppointmentResponse])
@cached_response(ttl=CACHE_TTL_BY_DATE)
async def get_by_date(
    request: Request,
    date: str = Query(..., description="YYYY-MM-DD"),
    principal: Principal = Depends(require_roles(Role.DOCTOR)),
    service: AppointmentQueryService = Depends(get_query_service),
):
    """The doctor's agenda for one day, any state"""
    return await service.by_date(principal.id, parse_iso_date(date))


# ============================================================================
# SINGLE APPOINTMENT
# ============================================================================


@router.get("/{appointment_id}", response_model=AppointmentDetailResponse)
@cached_response(ttl=CACHE_TTL_DETAIL)
async def get_appointment(
    appointment_id: int,
    request: Request,
    principal: Principal = Depends(patient_or_doctor),
    service: AppointmentQueryService = Depends(get_query_service),
):
    return await service.get_detail(appointment_id, principal)


@router.put("/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: int,
    data: AppointmentUpdate,
    principal: Principal = Depends(patient_only),
    service: BookingService = Depends(get_booking_service),
):
    """Reschedule or switch telephonic mode (72+ hours ahead only)"""
    return await service.update_appointment(appointment_id, principal.id, data)


@router.delete("/{appointment_id}", response_model=MessageResponse)
async def cancel_appointment(
    appointment_id: int,
    principal: Principal = Depends(patient_only),
    service: BookingService = Depends(get_booking_service),
):
    """Cancel an appointment (72+ hours ahead only)"""
    return await service.cancel_appointment(appointment_id, principal.id)
