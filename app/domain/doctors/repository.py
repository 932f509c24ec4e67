"""Doctor repository - Database reads for the doctor catalog"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ...models import Doctor, User, doctor_specialties


class DoctorRepository:
    """Repository for doctor database operations"""

    @staticmethod
    async def list_doctors(db: AsyncSession, specialty_id: Optional[int] = None) -> list[Doctor]:
        """All doctors ordered by last name, optionally only those with a specialty"""
        stmt = select(Doctor).join(User, Doctor.user_id == User.id)
        if specialty_id is not None:
            stmt = stmt.join(doctor_specialties, doctor_specialties.c.doctor_id == Doctor.user_id).where(
                doctor_specialties.c.specialty_id == specialty_id
            )
        result = await db.execute(stmt.order_by(User.last_name, User.first_name, Doctor.user_id))
        return list(result.unique().scalars().all())
