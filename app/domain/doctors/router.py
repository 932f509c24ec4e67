"""Doctor router - catalog and availability endpoints"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ...auth import Principal, get_principal
from ...cache import cached_response
from ...config import CACHE_TTL_AVAILABILITY, CACHE_TTL_CATALOG
from ...database import get_db
from ...shared.validators import parse_iso_date
from ..scheduling.schemas import AttendanceDaysResponse, AvailabilityResponse
from .schemas import DoctorResponse
from .service import DoctorService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/doctors", tags=["Doctors"])


def get_doctor_service(db: AsyncSession = Depends(get_db)) -> DoctorService:
    """Dependency injection for DoctorService"""
    return DoctorService(db)


@router.get("", response_model=list[DoctorResponse])
@cached_response(ttl=CACHE_TTL_CATALOG, user_scoped=False)
async def list_doctors(
    request: Request,
    specialtyId: Optional[int] = Query(None),
    principal: Principal = Depends(get_principal),
    service: DoctorService = Depends(get_doctor_service),
):
    """List doctors ordered by last name, optionally filtered by specialty"""
    return await service.list_doctors(specialtyId)


@router.get("/{doctor_id}/availability", response_model=AvailabilityResponse)
@cached_response(ttl=CACHE_TTL_AVAILABILITY, user_scoped=False)
async def get_availability(
    doctor_id: int,
    request: Request,
    date: str = Query(..., description="YYYY-MM-DD"),
    principal: Principal = Depends(get_principal),
    service: DoctorService = Depends(get_doctor_service),
):
    """30-minute slots of a doctor on a date, flagged available or not"""
    return await service.get_availability(doctor_id, parse_iso_date(date))


@router.get("/{doctor_id}/attendance-days", response_model=AttendanceDaysResponse)
@cached_response(ttl=CACHE_TTL_CATALOG, user_scoped=False)
async def get_attendance_days(
    doctor_id: int,
    request: Request,
    principal: Principal = Depends(get_principal),
    service: DoctorService = Depends(get_doctor_service),
):
    """Weekdays on which the doctor has schedule blocks"""
    return await service.get_attendance_days(doctor_id)
