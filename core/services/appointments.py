"""
Appointment scheduling.

Booking runs in two passes.  ``validate_appointment_data`` checks the
request on its own (required fields, booking window, duration) and
``check_appointment_conflicts`` checks it against the doctor's and the
patient's existing bookings plus the doctor's daily limit.  When the
second pass fails the caller gets up to five alternative slots from the
following week.

Bookings for one doctor are serialized by locking the doctor row, so
two receptionists cannot take the same slot concurrently.
"""
from __future__ import annotations

import dataclasses
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from core.exceptions import BookingConflict, InvalidTransition
from core.models import Appointment, Doctor, Patient
from core.services.audit import log_action
from core.services import slots

logger = logging.getLogger(__name__)

BUSINESS_HOURS = (7, 20)
SUGGESTION_HOURS = (9, 18)
SUGGESTION_DAYS = 7
MIN_DURATION, MAX_DURATION = 15, 120

TOKEN_STATUSES = ('scheduled', 'confirmed', 'in_progress', 'completed', 'rescheduled')
UPCOMING_STATUSES = ('scheduled', 'confirmed', 'rescheduled')
ID_ATTEMPTS = 3


@dataclasses.dataclass(frozen=True)
class BusinessRules:
    max_appointments_per_day: int = 30
    min_advance_booking_hours: int = 0
    max_advance_booking_days: int = 180
    allow_weekend_booking: bool = True
    emergency_slot_buffer: int = 10
    follow_up_grace_period: int = 14
    allow_emergency_booking: bool = True
    emergency_max_advance_days: int = 30

    @classmethod
    def from_settings(cls) -> "BusinessRules":
        overrides = getattr(settings, 'APPOINTMENT_RULES', None) or {}
        known = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: v for k, v in overrides.items() if k in known})


@dataclasses.dataclass
class ValidationResult:
    errors: list = dataclasses.field(default_factory=list)
    warnings: list = dataclasses.field(default_factory=list)
    suggestions: list = dataclasses.field(default_factory=list)
    # set when a failure is about availability rather than bad input
    conflict: bool = False

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        return ValidationResult(
            errors=self.errors + other.errors,
            warnings=self.warnings + other.warnings,
            conflict=self.conflict or other.conflict,
        )

    def to_dict(self) -> dict:
        return {
            'isValid': self.is_valid,
            'errors': self.errors,
            'warnings': self.warnings,
            'suggestions': self.suggestions,
        }


def _transitions() -> dict:
    return {
        'scheduled': ['confirmed', 'in_progress', 'completed', 'cancelled', 'rescheduled'],
        'confirmed': ['in_progress', 'completed', 'cancelled', 'rescheduled'],
        'rescheduled': ['confirmed', 'in_progress', 'completed', 'cancelled', 'rescheduled'],
        'in_progress': ['completed', 'cancelled'],
        'completed': [],
        'cancelled': [],
    }


def _can_transition(current: str, new: str) -> bool:
    """Return True if an appointment may move from ``current`` to ``new``."""
    return new in _transitions().get(current, [])


def _local_now(now=None) -> datetime:
    now = now or timezone.now()
    if timezone.is_aware(now):
        now = timezone.localtime(now)
    return now.replace(tzinfo=None)


def validate_appointment_data(data: dict, rules: Optional[BusinessRules] = None, now=None) -> ValidationResult:
    rules = rules or BusinessRules.from_settings()
    result = ValidationResult()
    for key, label in (('patient_id', 'Patient'), ('doctor_id', 'Doctor'),
                       ('appointment_date', 'Appointment date'), ('appointment_time', 'Appointment time')):
        if not data.get(key):
            result.errors.append(f'{label} is required')

    day, at = data.get('appointment_date'), data.get('appointment_time')
    if day and at:
        starts = datetime.combine(day, slots.parse_time(at))
        current = _local_now(now)
        if starts < current:
            result.errors.append('Appointment cannot be scheduled in the past')
        days_ahead = (starts - current).total_seconds() / 86400
        if data.get('is_emergency') and rules.allow_emergency_booking:
            # emergencies may be booked at any hour, any day
            if days_ahead > rules.emergency_max_advance_days:
                result.errors.append(
                    f'Emergency appointments cannot be booked more than {rules.emergency_max_advance_days} days in advance')
        else:
            if days_ahead > rules.max_advance_booking_days:
                result.errors.append(
                    f'Appointments cannot be booked more than {rules.max_advance_booking_days} days in advance')
            if rules.min_advance_booking_hours and 0 <= days_ahead * 24 < rules.min_advance_booking_hours:
                result.errors.append(
                    f'Appointments must be booked at least {rules.min_advance_booking_hours} hours in advance')
            if not rules.allow_weekend_booking and day.weekday() >= 5:
                result.warnings.append('Weekend appointments may have limited availability')
            if starts.hour < BUSINESS_HOURS[0] or starts.hour >= BUSINESS_HOURS[1]:
                result.warnings.append('Appointments outside 7:00 AM to 8:00 PM may have limited doctor availability')

    duration = data.get('duration_minutes')
    if duration and not (MIN_DURATION <= duration <= MAX_DURATION):
        result.errors.append(f'Appointment duration must be between {MIN_DURATION} and {MAX_DURATION} minutes')
    return result


def _daily_limit(doctor: Optional[Doctor], rules: BusinessRules) -> int:
    if doctor is not None and doctor.max_patients_per_day:
        return min(rules.max_appointments_per_day, doctor.max_patients_per_day)
    return rules.max_appointments_per_day


def check_appointment_conflicts(data: dict, exclude_id: Optional[int] = None,
                                rules: Optional[BusinessRules] = None) -> ValidationResult:
    rules = rules or BusinessRules.from_settings()
    result = ValidationResult()
    day = data['appointment_date']
    start = slots.to_minutes(data['appointment_time'])
    duration = data.get('duration_minutes') or slots.SLOT_MINUTES

    doctor_booked = list(slots.active_appointments(doctor=data['doctor_id'], day=day, exclude_id=exclude_id))
    for existing in doctor_booked:
        if slots.overlaps(start, duration, slots.to_minutes(existing.appointment_time), existing.duration_minutes):
            result.errors.append(f'Doctor has a conflicting appointment at {existing.appointment_time:%H:%M}')
            result.conflict = True

    for existing in slots.active_appointments(patient=data['patient_id'], day=day, exclude_id=exclude_id):
        if slots.overlaps(start, duration, slots.to_minutes(existing.appointment_time), existing.duration_minutes):
            result.errors.append(f'Patient has a conflicting appointment at {existing.appointment_time:%H:%M}')
            result.conflict = True

    doctor = Doctor.objects.filter(id=data['doctor_id']).first()
    limit = _daily_limit(doctor, rules)
    if len(doctor_booked) >= limit:
        result.errors.append(f'Doctor has reached the maximum daily appointment limit ({limit})')
        result.conflict = True
    return result


def validate_appointment(data: dict, exclude_id: Optional[int] = None,
                         rules: Optional[BusinessRules] = None, now=None) -> ValidationResult:
    rules = rules or BusinessRules.from_settings()
    basic = validate_appointment_data(data, rules, now)
    if not basic.is_valid:
        return basic
    return basic.merge(check_appointment_conflicts(data, exclude_id, rules))


def get_alternative_slots(data: dict, max_suggestions: int = 5,
                          rules: Optional[BusinessRules] = None, now=None) -> list[dict]:
    rules = rules or BusinessRules.from_settings()
    doctor = Doctor.objects.select_related('user').filter(id=data.get('doctor_id')).first()
    if doctor is None or not data.get('appointment_date'):
        return []
    duration = data.get('duration_minutes') or slots.SLOT_MINUTES
    suggestions: list[dict] = []
    for offset in range(SUGGESTION_DAYS):
        day = data['appointment_date'] + timedelta(days=offset)
        if not rules.allow_weekend_booking and day.weekday() >= 5:
            continue
        booked = list(slots.active_appointments(doctor=doctor, day=day, exclude_id=data.get('exclude_id')))
        for minutes in range(SUGGESTION_HOURS[0] * 60, SUGGESTION_HOURS[1] * 60, slots.SLOT_MINUTES):
            if len(suggestions) >= max_suggestions:
                return suggestions
            at = slots.from_minutes(minutes)
            if not slots.is_free(booked, at, duration):
                continue
            candidate = {**data, 'appointment_date': day, 'appointment_time': slots.parse_time(at)}
            if not validate_appointment_data(candidate, rules, now).is_valid:
                continue
            suggestions.append({
                'date': day.isoformat(),
                'time': at,
                'available': True,
                'doctorId': doctor.id,
                'doctorName': doctor.name,
                'specialization': doctor.specialization or 'General',
            })
    return suggestions


def validate_appointment_with_suggestions(data: dict, exclude_id: Optional[int] = None,
                                          rules: Optional[BusinessRules] = None, now=None) -> ValidationResult:
    rules = rules or BusinessRules.from_settings()
    result = validate_appointment(data, exclude_id, rules, now)
    if not result.is_valid and result.conflict:
        result.suggestions = get_alternative_slots({**data, 'exclude_id': exclude_id}, rules=rules, now=now)
    return result


def _raise_for(result: ValidationResult) -> None:
    if result.is_valid:
        return
    if result.conflict:
        raise BookingConflict(result.errors, result.warnings, result.suggestions)
    raise ValidationError({'errors': result.errors, 'warnings': result.warnings})


def generate_appointment_id(now=None) -> str:
    """``APT{YYYYMMDD}{NNNN}`` numbered within the booking day."""
    now = now or timezone.localtime()
    prefix = f"APT{now:%Y%m%d}"
    last = (
        Appointment.objects.filter(appointment_id__startswith=prefix)
        .order_by('-appointment_id')
        .values_list('appointment_id', flat=True)
        .first()
    )
    seq = int(last[len(prefix):]) + 1 if last else 1
    return f"{prefix}{seq:04d}"


def generate_token(doctor, day: date) -> int:
    """Per-doctor, per-day sequence number handed to the patient."""
    return Appointment.objects.filter(doctor=doctor, appointment_date=day, status__in=TOKEN_STATUSES).count() + 1


def create_appointment(data: dict, *, created_by=None, rules: Optional[BusinessRules] = None, now=None):
    """Validate and book; returns ``(appointment, validation_result)``."""
    rules = rules or BusinessRules.from_settings()
    with transaction.atomic():
        doctor = Doctor.objects.select_for_update().select_related('user').filter(id=data.get('doctor_id')).first()
        if doctor is None:
            raise ValidationError({'doctorId': 'only registered doctors can have appointments'})
        if doctor.status != 'active':
            raise ValidationError({'doctorId': 'doctor is not available for booking'})
        patient = Patient.objects.filter(id=data.get('patient_id')).first()
        if patient is None:
            raise ValidationError({'patientId': 'unknown patient'})
        if data.get('is_emergency') and not rules.allow_emergency_booking:
            raise ValidationError({'isEmergency': 'emergency booking is disabled'})

        result = validate_appointment_with_suggestions(data, rules=rules, now=now)
        _raise_for(result)
        if result.warnings:
            logger.warning('appointment warnings for patient %s: %s', patient.uhid, '; '.join(result.warnings))

        at = slots.parse_time(data['appointment_time'])
        is_emergency = bool(data.get('is_emergency'))
        fields = dict(
            patient=patient,
            doctor=doctor,
            appointment_date=data['appointment_date'],
            appointment_time=at,
            duration_minutes=data.get('duration_minutes') or slots.SLOT_MINUTES,
            appointment_type=data.get('appointment_type') or ('emergency' if is_emergency else 'consultation'),
            status='scheduled',
            token_number=generate_token(doctor, data['appointment_date']),
            is_emergency=is_emergency,
            session_type='emergency' if is_emergency else (slots.session_for_time(doctor, at) or ''),
            symptoms=data.get('chief_complaint') or data.get('symptoms') or '',
            chief_complaint=data.get('chief_complaint') or '',
            notes=data.get('notes') or '',
            created_by=created_by if getattr(created_by, 'is_authenticated', False) else None,
        )
        for attempt in range(ID_ATTEMPTS):
            try:
                with transaction.atomic():
                    appointment = Appointment.objects.create(appointment_id=generate_appointment_id(), **fields)
                break
            except IntegrityError:
                # another booking took the same number
                logger.warning('appointment id collision (attempt %d)', attempt + 1)
        else:
            raise ValidationError({'appointmentId': 'could not allocate an appointment id, try again'})
    log_action(user=created_by, action='appointment_create', object_type='appointment',
               object_id=appointment.appointment_id,
               detail={'doctor': doctor.doctor_code, 'patient': patient.uhid, 'token': appointment.token_number})
    return appointment, result


def get_appointment(appointment_id: str) -> Appointment:
    appointment = (
        Appointment.objects.select_related('patient', 'doctor__user')
        .filter(appointment_id=appointment_id)
        .first()
    )
    if not appointment:
        raise NotFound('appointment not found')
    return appointment


def list_appointments(*, patient_id=None, doctor_id=None, day: Optional[date] = None,
                      date_from: Optional[date] = None, date_to: Optional[date] = None,
                      status: Optional[str] = None, appointment_type: Optional[str] = None,
                      search: Optional[str] = None, page: Optional[int] = None,
                      page_size: Optional[int] = None) -> tuple[list[Appointment], int]:
    qs = Appointment.objects.select_related('patient', 'doctor__user')
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if doctor_id:
        qs = qs.filter(doctor_id=doctor_id)
    if day:
        qs = qs.filter(appointment_date=day)
    if date_from:
        qs = qs.filter(appointment_date__gte=date_from)
    if date_to:
        qs = qs.filter(appointment_date__lte=date_to)
    if status:
        qs = qs.filter(status=status)
    if appointment_type:
        qs = qs.filter(appointment_type=appointment_type)
    if search:
        qs = qs.filter(
            Q(appointment_id__icontains=search) | Q(patient__uhid__icontains=search)
            | Q(patient__first_name__icontains=search) | Q(patient__last_name__icontains=search)
            | Q(patient__phone__icontains=search)
            | Q(doctor__user__first_name__icontains=search) | Q(doctor__user__last_name__icontains=search)
        )
    total = qs.count()
    qs = qs.order_by('-appointment_date', '-appointment_time', '-id')
    if page and page_size:
        start = (page-1)*page_size
        qs = qs[start:start + page_size]
    return list(qs), total


def update_status(actor, appointment: Appointment, new_status: str) -> Appointment:
    with transaction.atomic():
        locked = Appointment.objects.select_for_update().get(id=appointment.id)
        if not _can_transition(locked.status, new_status):
            raise InvalidTransition(locked.status, new_status)
        old_status = locked.status
        locked.status = new_status
        locked.save(update_fields=['status', 'updated_at'])
    log_action(user=actor, action='appointment_status', object_type='appointment', object_id=locked.appointment_id,
               detail={'from': old_status, 'to': new_status})
    return locked


MEDICAL_FIELDS = ('diagnosis', 'treatment_plan', 'prescriptions', 'follow_up_required',
                  'follow_up_date', 'next_appointment_date', 'notes')


def update_medical_info(actor, appointment: Appointment, info: dict) -> Appointment:
    """Record the consultation outcome; empty values leave fields untouched."""
    changed = []
    for field in MEDICAL_FIELDS:
        value = info.get(field)
        if value in (None, '', []):
            continue
        setattr(appointment, field, value)
        changed.append(field)
    if changed:
        appointment.save(update_fields=changed + ['updated_at'])
        log_action(user=actor, action='appointment_medical', object_type='appointment',
                   object_id=appointment.appointment_id, detail={'fields': changed})
    return appointment


def reschedule_appointment(actor, appointment: Appointment, new_date: date, new_time,
                           rules: Optional[BusinessRules] = None, now=None) -> Appointment:
    rules = rules or BusinessRules.from_settings()
    with transaction.atomic():
        Doctor.objects.select_for_update().get(id=appointment.doctor_id)
        locked = Appointment.objects.select_for_update().select_related('doctor').get(id=appointment.id)
        if not _can_transition(locked.status, 'rescheduled'):
            raise InvalidTransition(locked.status, 'rescheduled')
        data = {
            'patient_id': locked.patient_id,
            'doctor_id': locked.doctor_id,
            'appointment_date': new_date,
            'appointment_time': slots.parse_time(new_time),
            'duration_minutes': locked.duration_minutes,
            'is_emergency': locked.is_emergency,
        }
        result = validate_appointment_with_suggestions(data, exclude_id=locked.id, rules=rules, now=now)
        _raise_for(result)
        old = (locked.appointment_date, locked.appointment_time)
        if new_date != locked.appointment_date:
            locked.token_number = generate_token(locked.doctor, new_date)
        locked.appointment_date = new_date
        locked.appointment_time = data['appointment_time']
        if not locked.is_emergency:
            locked.session_type = slots.session_for_time(locked.doctor, locked.appointment_time) or ''
        locked.status = 'rescheduled'
        locked.save()
    log_action(user=actor, action='appointment_reschedule', object_type='appointment',
               object_id=locked.appointment_id,
               detail={'from': f'{old[0]} {old[1]:%H:%M}', 'to': f'{new_date} {locked.appointment_time:%H:%M}'})
    return locked


def cancel_appointment(actor, appointment: Appointment, reason: str = '') -> Appointment:
    with transaction.atomic():
        locked = Appointment.objects.select_for_update().get(id=appointment.id)
        if not _can_transition(locked.status, 'cancelled'):
            raise InvalidTransition(locked.status, 'cancelled')
        locked.status = 'cancelled'
        locked.cancel_reason = (reason or '')[:255]
        locked.save(update_fields=['status', 'cancel_reason', 'updated_at'])
    log_action(user=actor, action='appointment_cancel', object_type='appointment', object_id=locked.appointment_id,
               detail={'reason': locked.cancel_reason})
    return locked


def patient_history(patient, limit: Optional[int] = None) -> list[Appointment]:
    qs = (
        Appointment.objects.select_related('patient', 'doctor__user')
        .filter(patient=patient)
        .order_by('-appointment_date', '-appointment_time')
    )
    return list(qs[:limit] if limit else qs)


def doctor_schedule(doctor, day: date) -> list[Appointment]:
    return list(
        slots.active_appointments(doctor=doctor, day=day)
        .select_related('patient', 'doctor__user')
        .order_by('appointment_time')
    )


def upcoming_appointments(*, doctor=None, patient=None, limit: int = 10, today: Optional[date] = None) -> list[Appointment]:
    today = today or timezone.localdate()
    qs = Appointment.objects.select_related('patient', 'doctor__user').filter(
        appointment_date__gte=today, status__in=UPCOMING_STATUSES,
    )
    if doctor is not None:
        qs = qs.filter(doctor=doctor)
    if patient is not None:
        qs = qs.filter(patient=patient)
    return list(qs.order_by('appointment_date', 'appointment_time')[:limit])


def appointment_stats(*, doctor=None, patient=None, date_from: Optional[date] = None,
                      date_to: Optional[date] = None, today: Optional[date] = None) -> dict:
    today = today or timezone.localdate()
    qs = Appointment.objects.all()
    if doctor is not None:
        qs = qs.filter(doctor=doctor)
    if patient is not None:
        qs = qs.filter(patient=patient)
    if date_from:
        qs = qs.filter(appointment_date__gte=date_from)
    if date_to:
        qs = qs.filter(appointment_date__lte=date_to)
    return {
        'total': qs.count(),
        'scheduled': qs.filter(status='scheduled').count(),
        'completed': qs.filter(status='completed').count(),
        'cancelled': qs.filter(status='cancelled').count(),
        'todayCount': qs.filter(appointment_date=today).count(),
        'upcomingCount': qs.filter(appointment_date__gt=today, status__in=UPCOMING_STATUSES).count(),
    }


def get_available_slots(doctor: Doctor, day: date, emergency: bool = False) -> list[dict]:
    """Bookable slots for one doctor and day.

    Emergency mode covers the whole day in 30 minute steps; otherwise each
    offered session contributes up to its ``maxPatients`` slots.
    """
    if not slots.works_on(doctor, day):
        return []
    booked = list(slots.active_appointments(doctor=doctor, day=day))
    base = {
        'date': day.isoformat(),
        'doctorId': doctor.id,
        'doctorName': doctor.name,
        'specialization': doctor.specialization,
    }
    if emergency:
        return [
            {**base, 'time': at, 'available': slots.is_free(booked, at), 'isEmergency': True}
            for at in slots.generate_time_slots('00:00', '24:00')
        ]
    result = []
    sessions = slots.doctor_sessions(doctor)
    for name in slots.offered_sessions(doctor):
        cfg = sessions.get(name)
        if not cfg:
            continue
        times = slots.generate_time_slots(cfg['startTime'], cfg['endTime'])
        for at in times[:int(cfg.get('maxPatients') or 8)]:
            result.append({**base, 'time': at, 'available': slots.is_free(booked, at), 'sessionType': name})
    return result


def appointment_to_dict(a: Appointment) -> dict:
    return {
        'id': a.id,
        'appointmentId': a.appointment_id,
        'patientId': a.patient_id,
        'patientUhid': a.patient.uhid,
        'patientName': a.patient.full_name,
        'doctorId': a.doctor_id,
        'doctorName': a.doctor.name,
        'specialization': a.doctor.specialization,
        'date': a.appointment_date.isoformat(),
        'time': a.appointment_time.strftime('%H:%M'),
        'durationMinutes': a.duration_minutes,
        'type': a.appointment_type,
        'status': a.status,
        'tokenNumber': a.token_number,
        'isEmergency': a.is_emergency,
        'sessionType': a.session_type,
        'symptoms': a.symptoms,
        'chiefComplaint': a.chief_complaint,
        'diagnosis': a.diagnosis,
        'treatmentPlan': a.treatment_plan,
        'prescriptions': a.prescriptions,
        'followUpRequired': a.follow_up_required,
        'followUpDate': a.follow_up_date.isoformat() if a.follow_up_date else None,
        'nextAppointmentDate': a.next_appointment_date.isoformat() if a.next_appointment_date else None,
        'notes': a.notes,
        'cancelReason': a.cancel_reason,
        'createdAt': a.created_at.isoformat() if a.created_at else None,
    }
