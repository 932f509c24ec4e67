import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select

from app.domain.appointments.schemas import AppointmentCreate, AppointmentUpdate
from app.domain.appointments.service import BookingService
from app.models import Appointment, AppointmentState
from app.shared.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError

from .conftest import (
    DOCTOR_ID,
    OTHER_DOCTOR_ID,
    OTHER_PATIENT_ID,
    PATIENT_ID,
    add_appointment,
    at,
    future_weekday,
)


async def test_create_round_trip(clinic, make_booking_service):
    monday = future_weekday(0)
    service = make_booking_service(clinic)

    created = await service.create_appointment(
        PATIENT_ID, AppointmentCreate(doctorId=DOCTOR_ID, start=at(monday, 10))
    )

    assert created.state == "pending"
    assert created.telephonic is False
    assert created.end - created.start == timedelta(minutes=30)
    assert created.doctor.lastName == "House"
    assert created.patient.firstName == "Ana"

    stored = (await clinic.execute(select(Appointment).where(Appointment.id == created.id))).unique().scalar_one()
    assert stored.start_at == at(monday, 10)
    assert stored.end_at == at(monday, 10, 30)


async def test_create_rejects_past_start(clinic, make_booking_service):
    monday = future_weekday(0)
    service = make_booking_service(clinic, clock=lambda: at(monday, 11))

    with pytest.raises(BadRequestError):
        await service.create_appointment(PATIENT_ID, AppointmentCreate(doctorId=DOCTOR_ID, start=at(monday, 10)))


async def test_create_rejects_start_equal_to_now(clinic, make_booking_service):
    monday = future_weekday(0)
    service = make_booking_service(clinic, clock=lambda: at(monday, 10))

    with pytest.raises(BadRequestError):
        await service.create_appointment(PATIENT_ID, AppointmentCreate(doctorId=DOCTOR_ID, start=at(monday, 10)))


async def test_create_unknown_doctor(clinic, make_booking_service):
    with pytest.raises(NotFoundError):
        await make_booking_service(clinic).create_appointment(
            PATIENT_ID, AppointmentCreate(doctorId=4040, start=at(future_weekday(0), 10))
        )


async def test_unknown_doctor_is_checked_before_past_start(clinic, make_booking_service):
    monday = future_weekday(0)
    service = make_booking_service(clinic, clock=lambda: at(monday, 12))

    with pytest.raises(NotFoundError):
        await service.create_appointment(PATIENT_ID, AppointmentCreate(doctorId=4040, start=at(monday, 10)))


async def test_create_conflicts_with_overlapping_booking(clinic, make_booking_service):
    monday = future_weekday(0)
    await add_appointment(clinic, at(monday, 10), patient_id=OTHER_PATIENT_ID)

    with pytest.raises(ConflictError):
        await make_booking_service(clinic).create_appointment(
            PATIENT_ID, AppointmentCreate(doctorId=DOCTOR_ID, start=at(monday, 10, 15))
        )


async def test_adjacent_booking_is_not_a_conflict(clinic, make_booking_service):
    monday = future_weekday(0)
    await add_appointment(clinic, at(monday, 10), patient_id=OTHER_PATIENT_ID)

    created = await make_booking_service(clinic).create_appointment(
        PATIENT_ID, AppointmentCreate(doctorId=DOCTOR_ID, start=at(monday, 10, 30))
    )
    assert created.state == "pending"


async def test_same_time_with_other_doctor_is_allowed(clinic, make_booking_service):
    monday = future_weekday(0)
    await add_appointment(clinic, at(monday, 10), patient_id=OTHER_PATIENT_ID)

    created = await make_booking_service(clinic).create_appointment(
        PATIENT_ID, AppointmentCreate(doctorId=OTHER_DOCTOR_ID, start=at(monday, 10))
    )
    assert created.doctor.id == OTHER_DOCTOR_ID


async def test_cancelled_slot_can_be_booked_again(clinic, make_booking_service):
    monday = future_weekday(0)
    await add_appointment(clinic, at(monday, 10), patient_id=OTHER_PATIENT_ID, state=AppointmentState.CANCELLED)

    created = await make_booking_service(clinic).create_appointment(
        PATIENT_ID, AppointmentCreate(doctorId=DOCTOR_ID, start=at(monday, 10))
    )
    assert created.state == "pending"


async def test_storage_constraint_violation_becomes_conflict(clinic, make_booking_service, monkeypatch):
    monday = future_weekday(0)
    await add_appointment(clinic, at(monday, 10), patient_id=OTHER_PATIENT_ID)

    async def no_overlap(self, doctor_id, start, exclude_id=None):
        return None

    monkeypatch.setattr(BookingService, "_ensure_no_overlap", no_overlap)

    with pytest.raises(ConflictError):
        await make_booking_service(clinic).create_appointment(
            PATIENT_ID, AppointmentCreate(doctorId=DOCTOR_ID, start=at(monday, 10))
        )

    count = (await clinic.execute(select(Appointment).where(Appointment.doctor_id == DOCTOR_ID))).unique().all()
    assert len(count) == 1


async def test_concurrent_bookings_of_one_slot_yield_one_winner(clinic, session_factory, make_booking_service):
    monday = future_weekday(0)
    await clinic.close()

    async def attempt(patient_id):
        async with session_factory() as session:
            return await make_booking_service(session).create_appointment(
                patient_id, AppointmentCreate(doctorId=DOCTOR_ID, start=at(monday, 10))
            )

    results = await asyncio.gather(attempt(PATIENT_ID), attempt(OTHER_PATIENT_ID), return_exceptions=True)

    successes = [r for r in results if not isinstance(r, Exception)]
    conflicts = [r for r in results if isinstance(r, ConflictError)]
    assert len(successes) == 1
    assert len(conflicts) == 1

    async with session_factory() as session:
        rows = (await session.execute(select(Appointment))).unique().scalars().all()
    assert len(rows) == 1


# --- update ---------------------------------------------------------------


async def test_update_allowed_just_over_72_hours_ahead(clinic, make_booking_service):
    monday = future_weekday(0)
    appointment = await add_appointment(clinic, at(monday, 10))
    clock = lambda: appointment.start_at - timedelta(hours=72, seconds=1)  # noqa: E731

    updated = await make_booking_service(clinic, clock=clock).update_appointment(
        appointment.id, PATIENT_ID, AppointmentUpdate(telephonic=True)
    )
    assert updated.telephonic is True


async def test_update_rejected_just_under_72_hours_ahead(clinic, make_booking_service):
    monday = future_weekday(0)
    appointment = await add_appointment(clinic, at(monday, 10))
    clock = lambda: appointment.start_at - timedelta(hours=71, minutes=59, seconds=59)  # noqa: E731

    with pytest.raises(BadRequestError):
        await make_booking_service(clinic, clock=clock).update_appointment(
            appointment.id, PATIENT_ID, AppointmentUpdate(telephonic=True)
        )


async def test_reschedule_moves_start_and_end(clinic, make_booking_service):
    monday = future_weekday(0)
    appointment = await add_appointment(clinic, at(monday, 10))
    wednesday = monday + timedelta(days=2)

    updated = await make_booking_service(clinic).update_appointment(
        appointment.id, PATIENT_ID, AppointmentUpdate(start=at(wednesday, 9, 30))
    )

    assert updated.start.replace(tzinfo=None) == at(wednesday, 9, 30)
    assert updated.end - updated.start == timedelta(minutes=30)
    assert updated.doctor.id == DOCTOR_ID


async def test_reschedule_onto_own_slot_is_not_a_conflict(clinic, make_booking_service):
    monday = future_weekday(0)
    appointment = await add_appointment(clinic, at(monday, 10))

    updated = await make_booking_service(clinic).update_appointment(
        appointment.id, PATIENT_ID, AppointmentUpdate(start=at(monday, 10, 15))
    )
    assert updated.start.replace(tzinfo=None) == at(monday, 10, 15)


async def test_reschedule_conflict(clinic, make_booking_service):
    monday = future_weekday(0)
    appointment = await add_appointment(clinic, at(monday, 10))
    await add_appointment(clinic, at(monday, 11), patient_id=OTHER_PATIENT_ID)

    with pytest.raises(ConflictError):
        await make_booking_service(clinic).update_appointment(
            appointment.id, PATIENT_ID, AppointmentUpdate(start=at(monday, 11))
        )


async def test_update_precondition_order(clinic, make_booking_service):
    monday = future_weekday(0)
    service = make_booking_service(clinic)
    appointment = await add_appointment(clinic, at(monday, 10))
    attended = await add_appointment(clinic, at(monday, 11), state=AppointmentState.ATTENDED)

    with pytest.raises(NotFoundError):
        await service.update_appointment(9999, PATIENT_ID, AppointmentUpdate(telephonic=True))
    with pytest.raises(ForbiddenError):
        await service.update_appointment(appointment.id, OTHER_PATIENT_ID, AppointmentUpdate(telephonic=True))
    with pytest.raises(BadRequestError, match="pending"):
        await service.update_appointment(attended.id, PATIENT_ID, AppointmentUpdate(telephonic=True))
    with pytest.raises(BadRequestError, match="at least one field"):
        await service.update_appointment(appointment.id, PATIENT_ID, AppointmentUpdate())


async def test_update_rejects_new_start_in_past(clinic, make_booking_service):
    monday = future_weekday(0)
    appointment = await add_appointment(clinic, at(monday, 10))

    with pytest.raises(BadRequestError):
        await make_booking_service(clinic).update_appointment(
            appointment.id, PATIENT_ID, AppointmentUpdate(start=at(monday - timedelta(days=30), 10))
        )


# --- cancel ---------------------------------------------------------------


async def test_cancel_then_cancel_again(clinic, make_booking_service):
    monday = future_weekday(0)
    appointment = await add_appointment(clinic, at(monday, 10))
    service = make_booking_service(clinic)

    result = await service.cancel_appointment(appointment.id, PATIENT_ID)
    assert result.message

    stored = (await clinic.execute(select(Appointment).where(Appointment.id == appointment.id))).unique().scalar_one()
    assert stored.state == "cancelled"

    with pytest.raises(BadRequestError):
        await service.cancel_appointment(appointment.id, PATIENT_ID)


async def test_cancel_by_other_patient_is_forbidden(clinic, make_booking_service):
    appointment = await add_appointment(clinic, at(future_weekday(0), 10))

    with pytest.raises(ForbiddenError):
        await make_booking_service(clinic).cancel_appointment(appointment.id, OTHER_PATIENT_ID)


async def test_cancel_inside_notice_window(clinic, make_booking_service):
    appointment = await add_appointment(clinic, at(future_weekday(0), 10))
    clock = lambda: appointment.start_at - timedelta(hours=24)  # noqa: E731

    with pytest.raises(BadRequestError):
        await make_booking_service(clinic, clock=clock).cancel_appointment(appointment.id, PATIENT_ID)


# --- attended / stale sweep -------------------------------------------------


async def test_mark_attended(clinic, make_booking_service):
    appointment = await add_appointment(clinic, at(future_weekday(0), 10))
    service = make_booking_service(clinic)

    with pytest.raises(ForbiddenError):
        await service.mark_attended(appointment.id, OTHER_DOCTOR_ID)

    attended = await service.mark_attended(appointment.id, DOCTOR_ID)
    assert attended.state == "attended"

    with pytest.raises(BadRequestError):
        await service.mark_attended(appointment.id, DOCTOR_ID)


async def test_expire_stale_appointments(clinic, make_booking_service):
    monday = future_weekday(0)
    stale = await add_appointment(clinic, at(monday, 9))
    recent = await add_appointment(clinic, at(monday, 10, 30), patient_id=OTHER_PATIENT_ID)
    attended = await add_appointment(clinic, at(monday, 8), state=AppointmentState.ATTENDED)

    cancelled = await make_booking_service(clinic, clock=lambda: at(monday, 11)).expire_stale_appointments()

    assert cancelled == 1
    rows = {
        a.id: a.state
        for a in (await clinic.execute(select(Appointment).execution_options(populate_existing=True)))
        .unique()
        .scalars()
    }
    assert rows == {stale.id: "cancelled", recent.id: "pending", attended.id: "attended"}


async def test_expire_stale_appointments_nothing_to_do(clinic, make_booking_service):
    assert await make_booking_service(clinic).expire_stale_appointments() == 0
