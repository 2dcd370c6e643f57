import logging
import secrets
from datetime import date
from typing import Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from core.models import Appointment, Department, Doctor, DoctorShift
from core.services.audit import log_action
from core.services import slots

User = get_user_model()
logger = logging.getLogger(__name__)

DOCTOR_CACHE_VERSION_KEY = 'doctors:version'


def cache_version() -> int:
    return cache.get_or_set(DOCTOR_CACHE_VERSION_KEY, 1, None)


def invalidate_doctor_cache() -> None:
    """Bump the version embedded in every cached doctor listing key."""
    try:
        cache.incr(DOCTOR_CACHE_VERSION_KEY)
    except ValueError:
        cache.set(DOCTOR_CACHE_VERSION_KEY, 2, None)


def cache_timeout() -> int:
    return getattr(settings, 'DOCTOR_CACHE_SECONDS', 300)


def generate_doctor_code(now=None) -> str:
    """``DR{YY}{MM}{NNNN}``, sequential within the month."""
    now = now or timezone.localtime()
    prefix = f"DR{now:%y%m}"
    last = (
        Doctor.objects.filter(doctor_code__startswith=prefix)
        .order_by('-doctor_code')
        .values_list('doctor_code', flat=True)
        .first()
    )
    seq = int(last[len(prefix):]) + 1 if last and last[len(prefix):].isdigit() else 1
    return f"{prefix}{seq:04d}"


def doctor_to_dict(d: Doctor) -> dict:
    return {
        'id': d.id,
        'doctorCode': d.doctor_code,
        'userId': d.user_id,
        'name': d.name,
        'email': d.user.email,
        'phone': d.user.phone,
        'licenseNumber': d.license_number,
        'specialization': d.specialization,
        'qualification': d.qualification,
        'departmentId': d.department_id,
        'departmentName': d.department.name if d.department else None,
        'yearsOfExperience': d.years_of_experience,
        'consultationFee': str(d.consultation_fee),
        'roomNumber': d.room_number,
        'floorNumber': d.floor_number,
        'sessions': slots.doctor_sessions(d),
        'availableSessions': slots.offered_sessions(d),
        'workingDays': d.working_days,
        'emergencyAvailable': d.emergency_available,
        'maxPatientsPerDay': d.max_patients_per_day,
        'status': d.status,
    }


def get_doctor(doctor_id) -> Doctor:
    doctor = Doctor.objects.select_related('user', 'department').filter(id=doctor_id).first()
    if not doctor:
        raise NotFound('doctor not found')
    return doctor


def list_doctors(*, q: Optional[str]=None, specialization: Optional[str]=None, department_id: Optional[int]=None,
                 on_duty_only: bool=False, status: Optional[str]='active', now=None,
                 page: Optional[int]=None, page_size: Optional[int]=None) -> tuple[list[dict], int]:
    now = now or timezone.now()
    qs = Doctor.objects.select_related('user', 'department')
    if status:
        qs = qs.filter(status=status)
    if q:
        qs = qs.filter(
            Q(user__first_name__icontains=q) | Q(user__last_name__icontains=q)
            | Q(user__username__icontains=q) | Q(doctor_code__icontains=q)
            | Q(specialization__icontains=q)
        )
    if specialization:
        qs = qs.filter(specialization__iexact=specialization)
    if department_id:
        qs = qs.filter(department_id=department_id)
    if on_duty_only:
        qs = qs.filter(shifts__start_at__lte=now, shifts__end_at__gt=now).distinct()

    total = qs.count()
    qs = qs.order_by('user__first_name', 'id')
    if page and page_size:
        start = (page-1)*page_size
        end = start + page_size
        qs = qs[start:end]
    return [doctor_to_dict(d) for d in qs], total


def _resolve_department(data: dict) -> Optional[Department]:
    dept_id = data.get('department_id')
    if dept_id:
        dept = Department.objects.filter(id=dept_id).first()
        if not dept:
            raise ValidationError({'departmentId': 'unknown department'})
        return dept
    name = (data.get('department_name') or '').strip()
    if name:
        return add_department(name)
    return None


PROFILE_FIELDS = [
    'license_number', 'specialization', 'qualification', 'years_of_experience',
    'consultation_fee', 'room_number', 'floor_number', 'sessions', 'available_sessions',
    'working_days', 'emergency_available', 'max_patients_per_day', 'status',
]


def create_doctor(actor, data: dict):
    """Create the staff account and roster entry; returns ``(doctor, initial_password)``."""
    password = data.get('password') or secrets.token_urlsafe(12)
    with transaction.atomic():
        username = data.get('username') or f"dr{int(timezone.now().timestamp())}{secrets.randbelow(100):02d}"
        if User.objects.filter(username=username).exists():
            raise ValidationError({'username': 'username already taken'})
        user = User.objects.create_user(
            username=username,
            password=password,
            first_name=data.get('first_name', ''),
            last_name=data.get('last_name', ''),
            email=data.get('email', ''),
        )
        user.role = 'doctor'
        user.phone = data.get('phone', '')
        dept = _resolve_department(data)
        user.department = dept
        user.save()
        doctor = Doctor(user=user, department=dept, doctor_code=generate_doctor_code())
        for field in PROFILE_FIELDS:
            if field in data and data[field] is not None:
                setattr(doctor, field, data[field])
        if not doctor.sessions:
            doctor.sessions = dict(slots.DEFAULT_SESSIONS)
        if not doctor.available_sessions:
            doctor.available_sessions = list(slots.SESSION_ORDER)
        if not doctor.working_days:
            doctor.working_days = [1, 2, 3, 4, 5, 6]
        doctor.save()
    invalidate_doctor_cache()
    log_action(user=actor, action='doctor_create', object_type='doctor', object_id=doctor.doctor_code)
    logger.info('created doctor %s (%s)', doctor.doctor_code, username)
    return doctor, password


def update_doctor(actor, doctor: Doctor, data: dict) -> Doctor:
    with transaction.atomic():
        locked = Doctor.objects.select_for_update().select_related('user').get(id=doctor.id)
        for field in PROFILE_FIELDS:
            if field in data:
                setattr(locked, field, data[field])
        user = locked.user
        for field in ('first_name', 'last_name', 'email', 'phone'):
            if field in data:
                setattr(user, field, data[field])
        if 'department_id' in data or 'department_name' in data:
            locked.department = _resolve_department(data)
            user.department = locked.department
        user.save()
        locked.save()
    invalidate_doctor_cache()
    log_action(user=actor, action='doctor_update', object_type='doctor', object_id=locked.doctor_code,
               detail={'fields': sorted(data.keys())})
    return locked


def set_availability(actor, doctor: Doctor, available: bool) -> Doctor:
    doctor.status = 'active' if available else 'inactive'
    doctor.save(update_fields=['status', 'updated_at'])
    invalidate_doctor_cache()
    log_action(user=actor, action='doctor_availability', object_type='doctor', object_id=doctor.doctor_code,
               detail={'status': doctor.status})
    return doctor


def delete_doctor(actor, doctor: Doctor) -> str:
    """Hard delete a doctor without history, otherwise deactivate."""
    code = doctor.doctor_code
    if Appointment.objects.filter(doctor=doctor).exists():
        doctor.status = 'inactive'
        doctor.save(update_fields=['status', 'updated_at'])
        doctor.user.is_active = False
        doctor.user.save(update_fields=['is_active'])
        outcome = 'deactivated'
    else:
        with transaction.atomic():
            user = doctor.user
            doctor.delete()
            user.delete()
        outcome = 'deleted'
    invalidate_doctor_cache()
    log_action(user=actor, action='doctor_delete', object_type='doctor', object_id=code, detail={'outcome': outcome})
    return outcome


def is_slot_available(doctor: Doctor, day: date, at, duration: int = slots.SLOT_MINUTES) -> bool:
    booked = slots.active_appointments(doctor=doctor, day=day)
    return slots.is_free(booked, at, duration)


def available_doctors(day: date, at=None, specialization: Optional[str] = None) -> list[Doctor]:
    """Active doctors working on ``day`` whose sessions cover ``at``."""
    qs = Doctor.objects.select_related('user', 'department').filter(status='active')
    if specialization:
        qs = qs.filter(specialization__iexact=specialization)
    result = []
    for doctor in qs.order_by('user__first_name', 'id'):
        if not slots.works_on(doctor, day):
            continue
        if at is not None:
            if slots.session_for_time(doctor, at) is None:
                continue
            if not is_slot_available(doctor, day, at):
                continue
        result.append(doctor)
    return result


def doctor_session_slots(doctor: Doctor, day: date) -> dict:
    """Free slot times grouped by session for one day."""
    grouped: dict[str, list[str]] = {name: [] for name in slots.offered_sessions(doctor)}
    if not slots.works_on(doctor, day):
        return grouped
    booked = list(slots.active_appointments(doctor=doctor, day=day))
    sessions = slots.doctor_sessions(doctor)
    for name in grouped:
        cfg = sessions.get(name)
        if not cfg:
            continue
        times = slots.generate_time_slots(cfg['startTime'], cfg['endTime'])[:int(cfg.get('maxPatients') or 0)]
        grouped[name] = [t for t in times if slots.is_free(booked, t)]
    return grouped


def doctors_with_slots(day: date, specialization: Optional[str] = None) -> list[dict]:
    data = []
    for doctor in available_doctors(day, specialization=specialization):
        free = doctor_session_slots(doctor, day)
        if any(free.values()):
            data.append({**doctor_to_dict(doctor), 'availableSlots': free})
    return data


def doctor_stats(doctor: Optional[Doctor] = None, today: Optional[date] = None) -> dict:
    today = today or timezone.localdate()
    qs = Appointment.objects.all()
    if doctor is not None:
        qs = qs.filter(doctor=doctor)
    return {
        'totalAppointments': qs.count(),
        'todayAppointments': qs.filter(appointment_date=today).count(),
        'completedAppointments': qs.filter(status='completed').count(),
        'pendingAppointments': qs.filter(status__in=['scheduled', 'confirmed']).count(),
    }


def list_specializations() -> list[str]:
    return list(
        Doctor.objects.filter(status='active')
        .order_by('specialization')
        .values_list('specialization', flat=True)
        .distinct()
    )


def list_departments(include_inactive: bool = False) -> list[Department]:
    qs = Department.objects.all()
    if not include_inactive:
        qs = qs.filter(is_active=True)
    return list(qs.order_by('name'))


def add_department(name: str, code: str = '', description: str = '') -> Department:
    name = name.strip()
    if not name:
        raise ValidationError({'name': 'department name is required'})
    dept = Department.objects.filter(name__iexact=name).first()
    if dept:
        return dept
    return Department.objects.create(name=name, code=code, description=description)


def add_shift(actor, doctor: Doctor, start_at, end_at) -> DoctorShift:
    if end_at <= start_at:
        raise ValidationError({'endAt': 'shift must end after it starts'})
    shift = DoctorShift.objects.create(doctor=doctor, department=doctor.department, start_at=start_at, end_at=end_at)
    invalidate_doctor_cache()
    log_action(user=actor, action='shift_add', object_type='doctor', object_id=doctor.doctor_code,
               detail={'shift': shift.id})
    return shift


def list_shifts(doctor: Doctor, *, upcoming_only: bool = True, now=None) -> list[DoctorShift]:
    now = now or timezone.now()
    qs = doctor.shifts.all()
    if upcoming_only:
        qs = qs.filter(end_at__gt=now)
    return list(qs.order_by('start_at'))


def delete_shift(actor, shift: DoctorShift) -> None:
    shift_id = shift.id
    doctor_code = shift.doctor.doctor_code
    shift.delete()
    invalidate_doctor_cache()
    log_action(user=actor, action='shift_delete', object_type='doctor', object_id=doctor_code,
               detail={'shift': shift_id})
