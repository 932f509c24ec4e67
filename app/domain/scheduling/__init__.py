"""
Scheduling Domain

Turns a doctor's weekly schedule blocks and date exceptions into availability
for a date, and that availability into bookable 30-minute slots.

Structure:
- repository.py   : schedule, exception and appointment-window queries
- availability.py : ScheduleResolver (weekly blocks + exceptions -> intervals)
- slots.py        : SlotGenerator (intervals + bookings -> slots)
- schemas.py      : availability response models

Weekly blocks and exceptions are read-only here; they are maintained by the
staff back office.
"""
