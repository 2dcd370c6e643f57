"""
Patient registration and lookup.

Patients are identified by a UHID of the form ``{prefix}{YY}{MM}{NNNN}``
where ``NNNN`` is random.  Registration comes in three modes (standard,
quick and emergency) that differ only in which fields are mandatory;
the serializer enforces those, this module assigns the UHID, derives
the age and optionally places the patient in today's queue and books
an initial appointment in the same transaction.
"""
from __future__ import annotations

import logging
import secrets
from datetime import date
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from core.models import Patient, Department, Doctor
from core.services.audit import log_action

logger = logging.getLogger(__name__)

MAX_UHID_ATTEMPTS = 1000

PATIENT_FIELDS = [
    'first_name', 'last_name', 'gender', 'date_of_birth', 'age', 'marital_status',
    'phone', 'email', 'address', 'city', 'state', 'pincode',
    'blood_group', 'allergies', 'medical_history', 'current_medications',
    'admission_type', 'primary_complaint',
    'guardian_name', 'guardian_relationship', 'guardian_phone',
    'emergency_contact_name', 'emergency_contact_phone', 'emergency_contact_relationship',
    'insurance_provider', 'insurance_number',
]


def generate_uhid(now=None) -> str:
    now = now or timezone.localtime()
    prefix = f"{getattr(settings, 'UHID_PREFIX', 'AH')}{now:%y%m}"
    for _ in range(MAX_UHID_ATTEMPTS):
        candidate = f"{prefix}{secrets.randbelow(10000):04d}"
        if validate_uhid_unique(candidate):
            return candidate
    logger.error('UHID space exhausted for prefix %s', prefix)
    raise ValidationError({'uhid': f'unable to allocate a unique UHID for {prefix}'})


def validate_uhid_unique(uhid: str) -> bool:
    return not Patient.objects.filter(uhid=uhid).exists()


def age_from_dob(dob: date, today: Optional[date] = None) -> int:
    today = today or timezone.localdate()
    years = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        years -= 1
    return max(years, 0)


def get_patient(uhid: str) -> Patient:
    patient = (
        Patient.objects.select_related('department', 'consulting_doctor__user')
        .filter(uhid=uhid)
        .first()
    )
    if not patient:
        raise NotFound('patient not found')
    return patient


def _apply_links(patient: Patient, data: dict) -> None:
    if 'department_id' in data:
        dept_id = data['department_id']
        patient.department = Department.objects.filter(id=dept_id).first() if dept_id else None
        if dept_id and patient.department is None:
            raise ValidationError({'departmentId': 'unknown department'})
    if 'consulting_doctor_id' in data:
        doc_id = data['consulting_doctor_id']
        patient.consulting_doctor = Doctor.objects.filter(id=doc_id).first() if doc_id else None
        if doc_id and patient.consulting_doctor is None:
            raise ValidationError({'consultingDoctorId': 'unknown doctor'})


def register_patient(user, data: dict, *, mode: str = 'standard',
                     add_to_queue: bool = False, appointment: Optional[dict] = None):
    """Create a patient and, optionally, a queue entry and first appointment.

    Returns ``(patient, queue_entry, appointment)``; the latter two are
    ``None`` when not requested.
    """
    from core.services import appointments as appointment_service
    from core.services import queue as queue_service

    with transaction.atomic():
        patient = Patient(registration_mode=mode, created_by=user)
        for field in PATIENT_FIELDS:
            if field in data and data[field] is not None:
                setattr(patient, field, data[field])
        if mode == 'emergency':
            patient.admission_type = 'emergency'
            if not patient.first_name:
                patient.first_name = 'Unknown Patient'
        if patient.date_of_birth:
            patient.age = age_from_dob(patient.date_of_birth)
        _apply_links(patient, data)
        # outpatients see a nurse for vitals before the doctor
        if patient.admission_type == 'outpatient':
            patient.registration_status = 'pending_vitals'
        patient.uhid = generate_uhid()
        patient.save()

        entry = None
        if add_to_queue:
            entry = queue_service.add_to_queue(patient, staff=user)

        booked = None
        if appointment:
            booked, _ = appointment_service.create_appointment(
                {**appointment, 'patient_id': patient.id}, created_by=user
            )

    log_action(user=user, action='patient_register', object_type='patient', object_id=patient.uhid,
               detail={'mode': mode, 'queued': bool(entry), 'appointment': booked.appointment_id if booked else None})
    logger.info('registered patient %s (%s)', patient.uhid, mode)
    return patient, entry, booked


def list_patients(*, search: Optional[str] = None, status: Optional[str] = None,
                  registration_status: Optional[str] = None, department_id: Optional[int] = None,
                  page: Optional[int] = None, page_size: Optional[int] = None) -> tuple[list[Patient], int]:
    qs = Patient.objects.select_related('department', 'consulting_doctor__user')
    if search:
        qs = qs.filter(
            Q(first_name__icontains=search) | Q(last_name__icontains=search)
            | Q(uhid__icontains=search) | Q(phone__icontains=search)
        )
    if status:
        qs = qs.filter(status=status)
    if registration_status:
        qs = qs.filter(registration_status=registration_status)
    if department_id:
        qs = qs.filter(department_id=department_id)
    total = qs.count()
    qs = qs.order_by('-created_at', '-id')
    if page and page_size:
        start = (page-1)*page_size
        qs = qs[start:start + page_size]
    return list(qs), total


def update_patient(user, patient: Patient, data: dict) -> Patient:
    with transaction.atomic():
        locked = Patient.objects.select_for_update().get(id=patient.id)
        changed = []
        for field in PATIENT_FIELDS:
            if field in data:
                setattr(locked, field, data[field])
                changed.append(field)
        if 'date_of_birth' in data and locked.date_of_birth:
            locked.age = age_from_dob(locked.date_of_birth)
        if 'status' in data:
            locked.status = data['status']
            changed.append('status')
        _apply_links(locked, data)
        locked.save()
    log_action(user=user, action='patient_update', object_type='patient', object_id=locked.uhid,
               detail={'fields': changed})
    return locked


def deactivate_patient(user, patient: Patient) -> Patient:
    patient.status = 'inactive'
    patient.save(update_fields=['status', 'updated_at'])
    log_action(user=user, action='patient_deactivate', object_type='patient', object_id=patient.uhid)
    return patient


def patient_to_dict(p: Patient) -> dict:
    return {
        'id': p.id,
        'uhid': p.uhid,
        'name': p.full_name,
        'firstName': p.first_name,
        'lastName': p.last_name,
        'gender': p.gender,
        'dateOfBirth': p.date_of_birth.isoformat() if p.date_of_birth else None,
        'age': p.age,
        'maritalStatus': p.marital_status,
        'phone': p.phone,
        'email': p.email,
        'address': p.address,
        'city': p.city,
        'state': p.state,
        'pincode': p.pincode,
        'bloodGroup': p.blood_group,
        'allergies': p.allergies,
        'medicalHistory': p.medical_history,
        'currentMedications': p.current_medications,
        'admissionType': p.admission_type,
        'primaryComplaint': p.primary_complaint,
        'consultingDoctorId': p.consulting_doctor_id,
        'consultingDoctorName': p.consulting_doctor.name if p.consulting_doctor else None,
        'departmentId': p.department_id,
        'departmentName': p.department.name if p.department else None,
        'guardian': {
            'name': p.guardian_name,
            'relationship': p.guardian_relationship,
            'phone': p.guardian_phone,
        },
        'emergencyContact': {
            'name': p.emergency_contact_name,
            'phone': p.emergency_contact_phone,
            'relationship': p.emergency_contact_relationship,
        },
        'insurance': {
            'provider': p.insurance_provider,
            'number': p.insurance_number,
        },
        'registrationMode': p.registration_mode,
        'registrationStatus': p.registration_status,
        'vitalsCompletedAt': p.vitals_completed_at.isoformat() if p.vitals_completed_at else None,
        'status': p.status,
        'createdAt': p.created_at.isoformat() if p.created_at else None,
    }


def patient_overview(patient: Patient) -> dict:
    """Everything the front desk shows on a patient's page."""
    from core.services.appointments import appointment_to_dict, patient_history
    from core.services.diagnostics import order_to_dict
    from core.services.queue import entry_to_dict, patient_queue_entry
    from core.services.vitals import latest_vitals, vitals_to_dict
    from core.services.revisits import patient_revisits, revisit_to_dict

    entry = patient_queue_entry(patient)
    latest = latest_vitals(patient)
    orders = patient.diagnostic_orders.select_related('test', 'ordering_doctor__user', 'patient').order_by('-created_at')[:20]
    return {
        'patient': patient_to_dict(patient),
        'appointments': [appointment_to_dict(a) for a in patient_history(patient)[:20]],
        'queueEntry': entry_to_dict(entry) if entry else None,
        'latestVitals': vitals_to_dict(latest) if latest else None,
        'diagnosticOrders': [order_to_dict(o) for o in orders],
        'revisits': [revisit_to_dict(r) for r in patient_revisits(patient, limit=10)],
    }
