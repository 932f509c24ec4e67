"""Appointment repository - Database operations for appointments"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from ...models import Appointment, AppointmentState, Patient


class AppointmentRepository:
    """Repository for appointment database operations"""

    @staticmethod
    async def get_by_id(db: AsyncSession, appointment_id: int) -> Optional[Appointment]:
        """Get an appointment with both parties and its attendance record loaded"""
        result = await db.execute(
            select(Appointment)
            .where(Appointment.id == appointment_id)
            .execution_options(populate_existing=True)
        )
        return result.unique().scalar_one_or_none()

    @staticmethod
    async def patient_exists(db: AsyncSession, patient_id: int) -> bool:
        result = await db.execute(select(Patient.user_id).where(Patient.user_id == patient_id))
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def create(db: AsyncSession, **appointment_data) -> Appointment:
        """Insert and commit a new appointment"""
        appointment = Appointment(**appointment_data)
        db.add(appointment)
        await db.commit()
        return await AppointmentRepository.get_by_id(db, appointment.id)

    @staticmethod
    async def save(db: AsyncSession, appointment: Appointment) -> Appointment:
        """Commit pending changes to an appointment"""
        await db.commit()
        return await AppointmentRepository.get_by_id(db, appointment.id)

    @staticmethod
    async def list_upcoming(
        db: AsyncSession, party: ColumnElement, party_id: int, now: datetime, limit: int
    ) -> list[Appointment]:
        """Non-cancelled appointments starting at or after now, soonest first"""
        result = await db.execute(
            select(Appointment)
            .where(
                party == party_id,
                Appointment.state != AppointmentState.CANCELLED.value,
                Appointment.start_at >= now,
            )
            .order_by(Appointment.start_at.asc(), Appointment.id.asc())
            .limit(limit)
        )
        return list(result.unique().scalars().all())

    @staticmethod
    async def list_recent_attended(
        db: AsyncSession, party: ColumnElement, party_id: int, limit: int
    ) -> list[Appointment]:
        result = await db.execute(
            select(Appointment)
            .where(party == party_id, Appointment.state == AppointmentState.ATTENDED.value)
            .order_by(Appointment.start_at.desc(), Appointment.id.desc())
            .limit(limit)
        )
        return list(result.unique().scalars().all())

    @staticmethod
    async def paginate(
        db: AsyncSession,
        filters: list[ColumnElement],
        page: int,
        limit: int,
        newest_first: bool = True,
    ) -> tuple[list[Appointment], int]:
        """
        One page of appointments matching `filters`.

        Returns:
            (items, total) where total counts every matching row
        """
        total = (await db.execute(select(func.count(Appointment.id)).where(*filters))).scalar_one()

        if newest_first:
            order = (Appointment.start_at.desc(), Appointment.id.desc())
        else:
            order = (Appointment.start_at.asc(), Appointment.id.asc())

        result = await db.execute(
            select(Appointment)
            .where(*filters)
            .order_by(*order)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.unique().scalars().all()), total

    @staticmethod
    async def list_for_doctor_between(
        db: AsyncSession, doctor_id: int, window_start: datetime, window_end: datetime
    ) -> list[Appointment]:
        """Appointments in any state starting inside [window_start, window_end)"""
        result = await db.execute(
            select(Appointment)
            .where(
                Appointment.doctor_id == doctor_id,
                Appointment.start_at >= window_start,
                Appointment.start_at < window_end,
            )
            .order_by(Appointment.start_at.asc(), Appointment.id.asc())
        )
        return list(result.unique().scalars().all())

    @staticmethod
    async def list_stale_pending(db: AsyncSession, cutoff: datetime) -> list[Appointment]:
        result = await db.execute(
            select(Appointment)
            .where(Appointment.state == AppointmentState.PENDING.value, Appointment.start_at < cutoff)
            .order_by(Appointment.start_at.asc())
        )
        return list(result.unique().scalars().all())
