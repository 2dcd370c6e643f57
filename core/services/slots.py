"""
Time-slot arithmetic shared by the doctor roster and appointment booking.

Times are handled as minutes since midnight.  Two bookings overlap when
their half-open intervals ``[start, start + duration)`` intersect.
Weekdays follow the roster convention 0 = Sunday .. 6 = Saturday.
"""
from __future__ import annotations

from datetime import date, time
from typing import Iterable, Optional

SLOT_MINUTES = 30

# statuses that still occupy a doctor's time
ACTIVE_STATUSES = ('scheduled', 'confirmed', 'in_progress', 'rescheduled')

DEFAULT_SESSIONS = {
    'morning': {'startTime': '09:00', 'endTime': '12:00', 'maxPatients': 8},
    'afternoon': {'startTime': '14:00', 'endTime': '17:00', 'maxPatients': 8},
    'evening': {'startTime': '18:00', 'endTime': '21:00', 'maxPatients': 8},
}
SESSION_ORDER = ('morning', 'afternoon', 'evening')


def to_minutes(value) -> int:
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    hours, minutes = str(value).split(':')[:2]
    return int(hours) * 60 + int(minutes)


def from_minutes(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def parse_time(value) -> time:
    total = to_minutes(value)
    return time(total // 60, total % 60)


def overlaps(start_a: int, duration_a: int, start_b: int, duration_b: int) -> bool:
    return start_a < start_b + duration_b and start_b < start_a + duration_a


def roster_weekday(day: date) -> int:
    """Python's Monday=0 weekday converted to Sunday=0."""
    return (day.weekday() + 1) % 7


def generate_time_slots(start, end, interval: int = SLOT_MINUTES) -> list[str]:
    return [from_minutes(m) for m in range(to_minutes(start), to_minutes(end), interval)]


def doctor_sessions(doctor) -> dict:
    """The doctor's configured sessions, falling back to the hospital defaults."""
    configured = doctor.sessions or {}
    return {name: {**DEFAULT_SESSIONS.get(name, {}), **(configured.get(name) or {})}
            for name in set(DEFAULT_SESSIONS) | set(configured)}


def offered_sessions(doctor) -> list[str]:
    names = doctor.available_sessions or list(SESSION_ORDER)
    return [n for n in SESSION_ORDER if n in names] + [n for n in names if n not in SESSION_ORDER]


def works_on(doctor, day: date) -> bool:
    days = doctor.working_days
    # no roster configured means every day
    if not days:
        return True
    return roster_weekday(day) in days


def session_for_time(doctor, at) -> Optional[str]:
    minutes = to_minutes(at)
    sessions = doctor_sessions(doctor)
    for name in offered_sessions(doctor):
        cfg = sessions.get(name)
        if cfg and to_minutes(cfg['startTime']) <= minutes < to_minutes(cfg['endTime']):
            return name
    return None


def active_appointments(*, doctor=None, patient=None, day: date, exclude_id: Optional[int] = None):
    from core.models import Appointment

    qs = Appointment.objects.filter(appointment_date=day, status__in=ACTIVE_STATUSES)
    if doctor is not None:
        qs = qs.filter(doctor=doctor)
    if patient is not None:
        qs = qs.filter(patient=patient)
    if exclude_id:
        qs = qs.exclude(id=exclude_id)
    return qs


def is_free(booked: Iterable, at, duration: int = SLOT_MINUTES) -> bool:
    start = to_minutes(at)
    return not any(
        overlaps(start, duration, to_minutes(a.appointment_time), a.duration_minutes) for a in booked
    )
