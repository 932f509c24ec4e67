"""Scheduling schemas - availability response models"""

import datetime as dt
from typing import Optional

from pydantic import BaseModel


class SlotResponse(BaseModel):
    """One 30-minute slot. start/end are UTC; startTime/endTime are clinic wall-clock HH:MM."""

    start: dt.datetime
    end: dt.datetime
    startTime: str
    endTime: str
    available: bool


class AvailabilityResponse(BaseModel):
    date: dt.date
    weekday: str
    attends: bool
    slots: list[SlotResponse]
    message: Optional[str] = None


class AttendanceDaysResponse(BaseModel):
    doctorId: int
    days: list[str]
