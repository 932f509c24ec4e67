"""
Appointments Domain

Booking, rescheduling, cancellation and role-scoped listings of appointments,
plus the cache invalidation every mutation triggers.

Structure:
- schemas.py            : request/response models
- repository.py         : appointment queries and persistence
- service.py            : BookingService (create/update/cancel/attended/expire)
- queries.py            : AppointmentQueryService (listings and detail)
- cache_invalidation.py : AppointmentCacheInvalidator (derived cache keys)
- router.py             : /appointments endpoints
"""
