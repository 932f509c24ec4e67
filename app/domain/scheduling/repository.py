"""Scheduling repository - Database reads for schedules and booked intervals"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ...models import Appointment, AppointmentState, Doctor, ScheduleBlock, ScheduleException


class ScheduleRepository:
    """Repository for schedule database operations"""

    @staticmethod
    async def get_doctor(db: AsyncSession, doctor_id: int, for_update: bool = False) -> Optional[Doctor]:
        """Get a doctor, optionally locking the row until the transaction ends"""
        stmt = select(Doctor).where(Doctor.user_id == doctor_id)
        if for_update:
            stmt = stmt.with_for_update(of=Doctor)
        result = await db.execute(stmt)
        return result.unique().scalar_one_or_none()

    @staticmethod
    async def get_blocks_for_weekday(db: AsyncSession, doctor_id: int, day_of_week: int) -> list[ScheduleBlock]:
        result = await db.execute(
            select(ScheduleBlock)
            .where(ScheduleBlock.doctor_id == doctor_id, ScheduleBlock.day_of_week == day_of_week)
            .order_by(ScheduleBlock.start_time)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_weekdays(db: AsyncSession, doctor_id: int) -> list[int]:
        """Distinct weekdays (0=Monday) with at least one schedule block"""
        result = await db.execute(
            select(ScheduleBlock.day_of_week)
            .where(ScheduleBlock.doctor_id == doctor_id)
            .distinct()
            .order_by(ScheduleBlock.day_of_week)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_exceptions_for_date(db: AsyncSession, doctor_id: int, day: date) -> list[ScheduleException]:
        result = await db.execute(
            select(ScheduleException)
            .where(ScheduleException.doctor_id == doctor_id, ScheduleException.date == day)
            .order_by(ScheduleException.start_time)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_active_appointments_between(
        db: AsyncSession,
        doctor_id: int,
        window_start: datetime,
        window_end: datetime,
        exclude_id: Optional[int] = None,
    ) -> list[Appointment]:
        """Non-cancelled appointments of a doctor whose [start, end) intersects the window"""
        stmt = select(Appointment).where(
            Appointment.doctor_id == doctor_id,
            Appointment.state != AppointmentState.CANCELLED.value,
            Appointment.start_at < window_end,
            Appointment.end_at > window_start,
        )
        if exclude_id is not None:
            stmt = stmt.where(Appointment.id != exclude_id)
        result = await db.execute(stmt.order_by(Appointment.start_at))
        return list(result.unique().scalars().all())
