"""Slot generator - splits availability into fixed slots and flags the bookable ones"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from ...config import APPOINTMENT_DURATION_MINUTES
from ...shared.timeutils import as_utc, clinic_tz, day_bounds, utcnow
from .availability import Interval, ScheduleResolver
from .repository import ScheduleRepository
from .schemas import AvailabilityResponse, SlotResponse

logger = logging.getLogger(__name__)


def split_into_slots(intervals: list[Interval], duration_minutes: int = APPOINTMENT_DURATION_MINUTES) -> list[Interval]:
    """Walk each interval in fixed steps; a trailing partial slot is dropped"""
    step = timedelta(minutes=duration_minutes)
    slots = []
    for interval in intervals:
        current_start = interval.start
        while current_start + step <= interval.end:
            slots.append(Interval(current_start, current_start + step))
            current_start += step
    return slots


def _wall_time(value: datetime) -> str:
    return as_utc(value).astimezone(clinic_tz).strftime("%H:%M")


class SlotGenerator:
    """Builds the availability view of a doctor for one date"""

    def __init__(self, db: AsyncSession, resolver: ScheduleResolver, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.resolver = resolver
        self.clock = clock
        self.repo = ScheduleRepository()

    async def generate(self, doctor_id: int, day: date) -> AvailabilityResponse:
        availability = await self.resolver.resolve(doctor_id, day)
        if not availability.attends:
            return AvailabilityResponse(
                date=day,
                weekday=availability.weekday,
                attends=False,
                slots=[],
                message=availability.reason,
            )

        window_start, window_end = day_bounds(day)
        booked = await self.repo.get_active_appointments_between(self.db, doctor_id, window_start, window_end)
        now = self.clock()

        slots = []
        for slot in split_into_slots(availability.intervals):
            taken = any(slot.overlaps(a.start_at, a.end_at) for a in booked)
            slots.append(
                SlotResponse(
                    start=as_utc(slot.start),
                    end=as_utc(slot.end),
                    startTime=_wall_time(slot.start),
                    endTime=_wall_time(slot.end),
                    available=not taken and slot.start > now,
                )
            )

        logger.debug(
            f"📅 Doctor {doctor_id} on {day}: {sum(s.available for s in slots)}/{len(slots)} slots available"
        )
        return AvailabilityResponse(date=day, weekday=availability.weekday, attends=True, slots=slots)
