import enum

from sqlalchemy import (
    DDL,
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Table,
    Text,
    Time,
    event,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class AppointmentState(str, enum.Enum):
    PENDING = "pending"
    ATTENDED = "attended"
    CANCELLED = "cancelled"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class Patient(Base):
    __tablename__ = "patients"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)

    user = relationship("User", lazy="joined")


doctor_specialties = Table(
    "doctor_specialties",
    Base.metadata,
    Column("doctor_id", Integer, ForeignKey("doctors.user_id", ondelete="CASCADE"), primary_key=True),
    Column("specialty_id", Integer, ForeignKey("specialties.id", ondelete="CASCADE"), primary_key=True),
)


class Specialty(Base):
    __tablename__ = "specialties"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)


class Doctor(Base):
    __tablename__ = "doctors"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    license_number = Column(String(50), nullable=True)

    user = relationship("User", lazy="joined")
    specialties = relationship(
        "Specialty", secondary=doctor_specialties, lazy="selectin", order_by="Specialty.name"
    )
    schedule_blocks = relationship("ScheduleBlock", back_populates="doctor", cascade="all, delete-orphan")


class ScheduleBlock(Base):
    """Recurring weekly window. day_of_week follows date.weekday(): 0=Monday .. 6=Sunday."""

    __tablename__ = "schedule_blocks"

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.user_id", ondelete="CASCADE"), nullable=False, index=True)
    day_of_week = Column(SmallInteger, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    doctor = relationship("Doctor", back_populates="schedule_blocks")

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_schedule_blocks_day"),
        CheckConstraint("end_time > start_time", name="ck_schedule_blocks_range"),
    )


class ScheduleException(Base):
    """
    Date-specific override of the weekly schedule.

    full_day=True closes the whole date. Otherwise start_time/end_time is a
    range that replaces the weekly blocks for that date (several rows on the
    same date add up).
    """

    __tablename__ = "schedule_exceptions"

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.user_id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    full_day = Column(Boolean, default=False, nullable=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    reason = Column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_schedule_exceptions_doctor_date", "doctor_id", "date"),
        CheckConstraint(
            "full_day OR (start_time IS NOT NULL AND end_time IS NOT NULL AND end_time > start_time)",
            name="ck_schedule_exceptions_range",
        ),
    )


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime, nullable=False)
    start_at = Column(DateTime, nullable=False)  # naive UTC
    end_at = Column(DateTime, nullable=False)  # naive UTC, start_at + 30 min
    telephonic = Column(Boolean, default=False, nullable=False)
    state = Column(String(20), default=AppointmentState.PENDING.value, nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.user_id", ondelete="CASCADE"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.user_id", ondelete="CASCADE"), nullable=False)

    patient = relationship("Patient", lazy="joined")
    doctor = relationship("Doctor", lazy="joined")
    attendance_record = relationship("AttendanceRecord", uselist=False, lazy="selectin")

    __table_args__ = (
        CheckConstraint("end_at > start_at", name="ck_appointments_interval"),
        Index("ix_appointments_doctor_start", "doctor_id", "start_at"),
        # Two active bookings for the same doctor and start can never both commit
        Index(
            "uq_appointments_doctor_start_active",
            "doctor_id",
            "start_at",
            unique=True,
            sqlite_where=text("state != 'cancelled'"),
            postgresql_where=text("state <> 'cancelled'"),
        ),
    )


class AttendanceRecord(Base):
    """Written by the clinical encounter workflow; rendered read-only on appointment detail."""

    __tablename__ = "attendance_records"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(
        Integer, ForeignKey("appointments.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    reason = Column(String(255), nullable=True)
    diagnosis = Column(Text, nullable=True)
    observations = Column(Text, nullable=True)
    prescription = Column(JSON, nullable=True)  # {"notes": str, "medications": [...]}
    referrals = Column(JSON, nullable=True)  # [{"specialty": str, "notes": str}, ...]
    created_at = Column(DateTime, server_default=func.now())


# PostgreSQL-only: partially overlapping active intervals of one doctor are rejected
# by the database itself, not just by the booking service's pre-check.
APPOINTMENT_OVERLAP_CONSTRAINT = "ex_appointments_doctor_interval"

CREATE_BTREE_GIST_EXTENSION = "CREATE EXTENSION IF NOT EXISTS btree_gist"

ADD_APPOINTMENT_OVERLAP_CONSTRAINT = f"""
ALTER TABLE appointments
ADD CONSTRAINT {APPOINTMENT_OVERLAP_CONSTRAINT}
EXCLUDE USING gist (
    doctor_id WITH =,
    tsrange(start_at, end_at, '[)') WITH &&
) WHERE (state <> 'cancelled')
"""

event.listen(
    Appointment.__table__,
    "before_create",
    DDL(CREATE_BTREE_GIST_EXTENSION).execute_if(dialect="postgresql"),
)
event.listen(
    Appointment.__table__,
    "after_create",
    DDL(ADD_APPOINTMENT_OVERLAP_CONSTRAINT).execute_if(dialect="postgresql"),
)
