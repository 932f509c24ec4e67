"""
Appointment cache invalidation.

Listings, detail views and availability are cached per key (see app/cache.py).
After every committed appointment mutation the invalidator deletes every key
whose payload could include the mutated appointment. The key space is
enumerated: bare paths, pages 1-10 x the common limits, and by-date keys for a
window around today. Entries outside that space expire by TTL.
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterator, Optional

from ...cache import Cache, build_public_key, build_user_key
from ...config import (
    API_PREFIX,
    INVALIDATION_DAYS_BACK,
    INVALIDATION_DAYS_FORWARD,
    INVALIDATION_LIMITS,
    INVALIDATION_PAGES,
)
from ...shared.timeutils import clinic_today

logger = logging.getLogger(__name__)

APPOINTMENTS_PATH = f"{API_PREFIX}/appointments"


class EventKind(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    CANCELLED = "cancelled"
    ATTENDED = "attended"


@dataclass(frozen=True)
class AppointmentEvent:
    kind: EventKind
    appointment_id: int
    patient_id: int
    doctor_id: int
    # clinic dates whose availability changed (old and new date on reschedule)
    dates: tuple[date, ...] = field(default_factory=tuple)


def paginated_params() -> Iterator[dict]:
    """Every page/limit combination a client is expected to request"""
    yield {}
    for page in INVALIDATION_PAGES:
        yield {"page": page}
        for limit in INVALIDATION_LIMITS:
            yield {"page": page, "limit": limit}
    for limit in INVALIDATION_LIMITS:
        yield {"limit": limit}


def _paginated_keys(user_id: int, path: str) -> Iterator[str]:
    for params in paginated_params():
        yield build_user_key(user_id, path, params)


def patient_keys(patient_id: int) -> Iterator[str]:
    yield build_user_key(patient_id, f"{APPOINTMENTS_PATH}/upcoming")
    yield build_user_key(patient_id, f"{APPOINTMENTS_PATH}/recent")
    yield from _paginated_keys(patient_id, f"{APPOINTMENTS_PATH}/pending")
    yield from _paginated_keys(patient_id, f"{APPOINTMENTS_PATH}/attended")


def doctor_keys(doctor_id: int, today: date, extra_dates: tuple[date, ...] = ()) -> Iterator[str]:
    yield build_user_key(doctor_id, f"{APPOINTMENTS_PATH}/upcoming")
    yield build_user_key(doctor_id, f"{APPOINTMENTS_PATH}/recent")
    yield from _paginated_keys(doctor_id, f"{APPOINTMENTS_PATH}/pending")
    yield from _paginated_keys(doctor_id, f"{APPOINTMENTS_PATH}/attended")
    yield from _paginated_keys(doctor_id, f"{APPOINTMENTS_PATH}/all")

    days = [today + timedelta(days=offset) for offset in range(-INVALIDATION_DAYS_BACK, INVALIDATION_DAYS_FORWARD + 1)]
    for day in dict.fromkeys([*days, *extra_dates]):
        yield build_user_key(doctor_id, f"{APPOINTMENTS_PATH}/by-date", {"date": day.isoformat()})


def availability_keys(doctor_id: int, dates: tuple[date, ...]) -> Iterator[str]:
    for day in dates:
        yield build_public_key(f"{API_PREFIX}/doctors/{doctor_id}/availability", {"date": day.isoformat()})


def keys_for_event(event: AppointmentEvent, today: date) -> list[str]:
    """All cache keys an appointment event makes stale, without duplicates"""
    keys = list(patient_keys(event.patient_id))
    keys.extend(doctor_keys(event.doctor_id, today, event.dates))
    if event.kind != EventKind.CREATED:
        detail_path = f"{APPOINTMENTS_PATH}/{event.appointment_id}"
        keys.append(build_user_key(event.patient_id, detail_path))
        keys.append(build_user_key(event.doctor_id, detail_path))
    keys.extend(availability_keys(event.doctor_id, event.dates))
    return list(dict.fromkeys(keys))


class AppointmentCacheInvalidator:
    """Deletes derived cache entries after appointment mutations"""

    def __init__(self, cache: Cache):
        self.cache = cache

    async def invalidate(self, event: AppointmentEvent, today: Optional[date] = None) -> int:
        """
        Delete every key affected by `event`.

        Failures are logged by the cache and never raised; staleness is then
        bounded by the entry TTL. Returns the number of keys deleted.
        """
        keys = keys_for_event(event, today or clinic_today())
        deleted = await self.cache.delete_many(keys)
        logger.info(
            f"🧹 Invalidated {deleted}/{len(keys)} cache keys for appointment {event.appointment_id} ({event.kind.value})"
        )
        return deleted
