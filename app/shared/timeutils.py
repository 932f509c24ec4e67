"""
Clinic time helpers.

Appointments are persisted as naive UTC. Weekly schedules and exceptions are
clinic wall-clock times in CLINIC_TIMEZONE, so every date-bound query goes
through these helpers.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional

import pytz

from ..config import CLINIC_TIMEZONE

clinic_tz = pytz.timezone(CLINIC_TIMEZONE)


def utcnow() -> datetime:
    """Current instant as naive UTC, the storage representation"""
    return datetime.now(pytz.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    """Normalize an incoming datetime. Naive values are clinic-local."""
    if value.tzinfo is None:
        value = clinic_tz.localize(value)
    return value.astimezone(pytz.utc).replace(tzinfo=None)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to a stored naive timestamp for serialization"""
    return pytz.utc.localize(value) if value.tzinfo is None else value.astimezone(pytz.utc)


def clinic_datetime(day: date, wall_time: time) -> datetime:
    """Clinic wall-clock time on a date, as naive UTC"""
    return to_utc_naive(datetime.combine(day, wall_time))


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """[local midnight, next local midnight) of a clinic date, as naive UTC"""
    return clinic_datetime(day, time.min), clinic_datetime(day + timedelta(days=1), time.min)


def clinic_date(value: datetime) -> date:
    """Clinic calendar date of a stored naive UTC timestamp"""
    return pytz.utc.localize(value).astimezone(clinic_tz).date()


def clinic_today(now: Optional[datetime] = None) -> date:
    return clinic_date(now or utcnow())
