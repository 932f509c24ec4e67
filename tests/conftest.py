from datetime import date, datetime, time, timedelta
from typing import Optional

import fakeredis
import pytest
from httpx import ASGITransport, AsyncClient

from app.auth import create_access_token
from app.cache import Cache
from app.database import create_engine_from_url, create_session_factory, create_tables
from app.domain.appointments.cache_invalidation import AppointmentCacheInvalidator
from app.domain.appointments.service import BookingService
from app.domain.scheduling.availability import ScheduleResolver
from app.main import create_app
from app.models import (
    Appointment,
    AppointmentState,
    Doctor,
    Patient,
    ScheduleBlock,
    ScheduleException,
    Specialty,
    User,
    doctor_specialties,
)
from app.shared.timeutils import clinic_datetime, clinic_today, utcnow

PATIENT_ID = 1
OTHER_PATIENT_ID = 2
DOCTOR_ID = 10
OTHER_DOCTOR_ID = 11
ADMIN_ID = 99


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine_from_url(f"sqlite+aiosqlite:///{tmp_path / 'clinic.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def redis_client():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    await client.flushall()
    yield client
    await client.aclose()


@pytest.fixture
def cache(redis_client):
    return Cache(redis_client)


@pytest.fixture
def make_booking_service(cache):
    def _make(session, clock=utcnow) -> BookingService:
        return BookingService(session, ScheduleResolver(session), AppointmentCacheInvalidator(cache), clock=clock)

    return _make


@pytest.fixture
async def app(engine, session_factory, redis_client):
    return create_app(engine=engine, session_factory=session_factory, redis_client=redis_client)


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def auth_headers(user_id: int, *roles: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, list(roles))}"}


def future_weekday(weekday: int, min_days_ahead: int = 7) -> date:
    """First clinic date with the given weekday (0=Monday) at least min_days_ahead from today"""
    day = clinic_today() + timedelta(days=min_days_ahead)
    return day + timedelta(days=(weekday - day.weekday()) % 7)


def at(day: date, hour: int, minute: int = 0) -> datetime:
    """Naive UTC instant of a clinic wall-clock time"""
    return clinic_datetime(day, time(hour, minute))


async def add_user(session, user_id: int, first_name: str, last_name: str) -> User:
    user = User(id=user_id, first_name=first_name, last_name=last_name, email=f"user{user_id}@clinic.test")
    session.add(user)
    return user


async def add_patient(session, user_id: int, first_name: str = "Ana", last_name: str = "Lopez") -> Patient:
    await add_user(session, user_id, first_name, last_name)
    patient = Patient(user_id=user_id)
    session.add(patient)
    await session.commit()
    return patient


async def add_doctor(
    session,
    user_id: int,
    first_name: str = "Gregory",
    last_name: str = "House",
    blocks: Optional[list] = None,
    specialties: Optional[list[Specialty]] = None,
) -> Doctor:
    """blocks: [(day_of_week, "HH:MM", "HH:MM"), ...]"""
    await add_user(session, user_id, first_name, last_name)
    doctor = Doctor(user_id=user_id, license_number=f"LIC-{user_id}")
    session.add(doctor)
    await session.flush()
    for specialty in specialties or []:
        await session.execute(
            doctor_specialties.insert().values(doctor_id=user_id, specialty_id=specialty.id)
        )
    for day_of_week, start, end in blocks or []:
        session.add(
            ScheduleBlock(
                doctor_id=user_id,
                day_of_week=day_of_week,
                start_time=time.fromisoformat(start),
                end_time=time.fromisoformat(end),
            )
        )
    await session.commit()
    return doctor


async def add_exception(
    session,
    doctor_id: int,
    day: date,
    full_day: bool = False,
    start: Optional[str] = None,
    end: Optional[str] = None,
    reason: Optional[str] = None,
) -> ScheduleException:
    exception = ScheduleException(
        doctor_id=doctor_id,
        date=day,
        full_day=full_day,
        start_time=time.fromisoformat(start) if start else None,
        end_time=time.fromisoformat(end) if end else None,
        reason=reason,
    )
    session.add(exception)
    await session.commit()
    return exception


async def add_appointment(
    session,
    start: datetime,
    patient_id: int = PATIENT_ID,
    doctor_id: int = DOCTOR_ID,
    state: AppointmentState = AppointmentState.PENDING,
    telephonic: bool = False,
) -> Appointment:
    appointment = Appointment(
        created_at=utcnow(),
        start_at=start,
        end_at=start + timedelta(minutes=30),
        telephonic=telephonic,
        state=state.value,
        patient_id=patient_id,
        doctor_id=doctor_id,
    )
    session.add(appointment)
    await session.commit()
    return appointment


@pytest.fixture
async def clinic(db):
    """Two patients and two doctors; the main doctor works Mon/Wed 09:00-12:00 and 14:00-16:00"""
    await add_patient(db, PATIENT_ID, "Ana", "Lopez")
    await add_patient(db, OTHER_PATIENT_ID, "Bruno", "Diaz")
    await add_doctor(
        db,
        DOCTOR_ID,
        "Gregory",
        "House",
        blocks=[(0, "09:00", "12:00"), (0, "14:00", "16:00"), (2, "09:00", "12:00")],
    )
    await add_doctor(db, OTHER_DOCTOR_ID, "Lisa", "Cuddy", blocks=[(1, "10:00", "11:00")])
    return db
