"""Schedule resolver - weekly blocks and date exceptions to availability intervals"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ...models import Doctor
from ...shared.errors import NotFoundError
from ...shared.timeutils import clinic_datetime
from .repository import ScheduleRepository

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


@dataclass
class Interval:
    """Half-open [start, end) in naive UTC"""

    start: datetime
    end: datetime

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and start < self.end


@dataclass
class Availability:
    day: date
    weekday: str
    intervals: list[Interval] = field(default_factory=list)
    reason: Optional[str] = None

    @property
    def attends(self) -> bool:
        return bool(self.intervals)


def merge_intervals(intervals: list[Interval]) -> list[Interval]:
    """Sort and join overlapping or touching intervals"""
    if not intervals:
        return []

    ordered = sorted(intervals, key=lambda i: i.start)
    merged = [Interval(ordered[0].start, ordered[0].end)]

    for current in ordered[1:]:
        last = merged[-1]
        if current.start <= last.end:
            if current.end > last.end:
                last.end = current.end
        else:
            merged.append(Interval(current.start, current.end))

    return merged


class ScheduleResolver:
    """Resolves a doctor's nominal availability for a date"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = ScheduleRepository()

    async def ensure_doctor(self, doctor_id: int, for_update: bool = False) -> Doctor:
        """Get the doctor or raise NotFound. for_update holds the row lock until commit/rollback."""
        doctor = await self.repo.get_doctor(self.db, doctor_id, for_update=for_update)
        if not doctor:
            raise NotFoundError(f"Doctor {doctor_id} not found")
        return doctor

    async def resolve(self, doctor_id: int, day: date) -> Availability:
        await self.ensure_doctor(doctor_id)

        weekday = day.weekday()
        weekday_name = WEEKDAY_NAMES[weekday]
        exceptions = await self.repo.get_exceptions_for_date(self.db, doctor_id, day)

        closed = next((e for e in exceptions if e.full_day), None)
        if closed:
            logger.debug(f"📅 Doctor {doctor_id} closed on {day}: {closed.reason}")
            return Availability(
                day=day,
                weekday=weekday_name,
                reason=closed.reason or "Doctor does not attend on this date",
            )

        if exceptions:
            # Partial exceptions replace the weekly blocks for this date
            ranges = [(e.start_time, e.end_time) for e in exceptions]
        else:
            blocks = await self.repo.get_blocks_for_weekday(self.db, doctor_id, weekday)
            ranges = [(b.start_time, b.end_time) for b in blocks]

        intervals = merge_intervals(
            [Interval(clinic_datetime(day, start), clinic_datetime(day, end)) for start, end in ranges]
        )
        if not intervals:
            return Availability(
                day=day, weekday=weekday_name, reason=f"Doctor does not attend on {weekday_name}s"
            )
        return Availability(day=day, weekday=weekday_name, intervals=intervals)

    async def attendance_days(self, doctor_id: int) -> list[str]:
        """Weekday names (Monday first) on which the doctor has schedule blocks"""
        await self.ensure_doctor(doctor_id)
        weekdays = await self.repo.get_weekdays(self.db, doctor_id)
        return [WEEKDAY_NAMES[d] for d in weekdays]
