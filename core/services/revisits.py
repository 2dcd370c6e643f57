"""
Return outpatient visits.

A revisit is recorded for a patient who already holds a UHID, instead
of registering them again.  The front desk may put the patient back in
today's queue and book the consultation in the same step.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from core.models import Department, Doctor, Patient, PatientRevisit
from core.services.audit import log_action
from core.services.events import publish

logger = logging.getLogger(__name__)

REVISIT_FIELDS = (
    'visit_date', 'visit_time', 'reason_for_visit', 'symptoms', 'previous_diagnosis', 'current_diagnosis',
    'consultation_fee', 'payment_mode', 'payment_status', 'visit_type', 'notes',
)


def _apply_links(revisit: PatientRevisit, data: dict) -> None:
    if 'doctor_id' in data:
        doctor_id = data['doctor_id']
        revisit.doctor = Doctor.objects.select_related('user').filter(id=doctor_id).first() if doctor_id else None
        if doctor_id and revisit.doctor is None:
            raise ValidationError({'doctorId': 'unknown doctor'})
        if revisit.doctor and revisit.doctor.status != 'active':
            raise ValidationError({'doctorId': 'doctor is not available'})
    if 'department_id' in data:
        dept_id = data['department_id']
        revisit.department = Department.objects.filter(id=dept_id).first() if dept_id else None
        if dept_id and revisit.department is None:
            raise ValidationError({'departmentId': 'unknown department'})


def create_revisit(actor, patient: Patient, data: dict, *, add_to_queue: bool = False,
                   appointment: Optional[dict] = None):
    """Record a return visit.

    Returns ``(revisit, queue_entry, appointment)``; the latter two are
    ``None`` when not requested.  Queued outpatients go back to
    ``pending_vitals`` so the nurse takes a fresh set of vitals.
    """
    from core.services import appointments as appointment_service
    from core.services import queue as queue_service

    if patient.status != 'active':
        raise ValidationError({'uhid': 'patient record is inactive'})
    if patient.admission_type == 'inpatient':
        raise ValidationError({'uhid': 'patient is currently an inpatient'})
    actor = actor if getattr(actor, 'is_authenticated', False) else None
    now = timezone.localtime()

    with transaction.atomic():
        revisit = PatientRevisit(patient=patient, staff=actor, visit_date=now.date(), visit_time=now.time())
        for field in REVISIT_FIELDS:
            if data.get(field) is not None:
                setattr(revisit, field, data[field])
        _apply_links(revisit, data)
        if appointment and revisit.doctor is None:
            _apply_links(revisit, {'doctor_id': appointment.get('doctor_id')})
        doctor = revisit.doctor
        if doctor is not None:
            revisit.department = revisit.department or doctor.department
            if data.get('consultation_fee') is None:
                revisit.consultation_fee = doctor.consultation_fee

        booked = None
        if appointment:
            # the consultation is always booked with the revisit's doctor
            booked, _ = appointment_service.create_appointment({
                **appointment,
                'patient_id': patient.id,
                'doctor_id': doctor.id,
                'chief_complaint': appointment.get('chief_complaint') or revisit.reason_for_visit,
            }, created_by=actor)
            revisit.appointment = booked
        revisit.save()

        entry = None
        if add_to_queue:
            entry = queue_service.add_to_queue(patient, staff=actor, doctor=doctor)
            if patient.admission_type == 'outpatient' and patient.registration_status != 'pending_vitals':
                patient.registration_status = 'pending_vitals'
                patient.save(update_fields=['registration_status', 'updated_at'])

    publish('revisits', action='created', revisitId=revisit.id, uhid=patient.uhid)
    log_action(user=actor, action='revisit_create', object_type='patient', object_id=patient.uhid,
               detail={'revisit': revisit.id, 'type': revisit.visit_type, 'queued': bool(entry),
                       'appointment': booked.appointment_id if booked else None})
    logger.info('revisit %s recorded for %s', revisit.id, patient.uhid)
    return revisit, entry, booked


def get_revisit(revisit_id) -> PatientRevisit:
    revisit = (
        PatientRevisit.objects.select_related('patient', 'doctor__user', 'department', 'staff', 'appointment')
        .filter(id=revisit_id)
        .first()
    )
    if not revisit:
        raise NotFound('revisit not found')
    return revisit


def update_revisit(actor, revisit: PatientRevisit, data: dict) -> PatientRevisit:
    changed = [f for f in REVISIT_FIELDS if f in data and data[f] is not None]
    for field in changed:
        setattr(revisit, field, data[field])
    _apply_links(revisit, data)
    changed += [f for f in ('doctor_id', 'department_id') if f in data]
    revisit.save()
    log_action(user=actor, action='revisit_update', object_type='patient', object_id=revisit.patient.uhid,
               detail={'revisit': revisit.id, 'fields': changed})
    return revisit


def _base_queryset():
    return PatientRevisit.objects.select_related('patient', 'doctor__user', 'department', 'staff', 'appointment')


def patient_revisits(patient: Patient, limit: Optional[int] = None) -> list[PatientRevisit]:
    qs = _base_queryset().filter(patient=patient).order_by('-visit_date', '-visit_time', '-id')
    return list(qs[:limit] if limit else qs)


def list_revisits(*, date_from: Optional[date] = None, date_to: Optional[date] = None,
                  doctor=None, visit_type: Optional[str] = None,
                  page: Optional[int] = None, page_size: Optional[int] = None) -> tuple[list[PatientRevisit], int]:
    qs = _base_queryset()
    if date_from:
        qs = qs.filter(visit_date__gte=date_from)
    if date_to:
        qs = qs.filter(visit_date__lte=date_to)
    if doctor is not None:
        qs = qs.filter(doctor=doctor)
    if visit_type:
        qs = qs.filter(visit_type=visit_type)
    total = qs.count()
    qs = qs.order_by('-visit_date', '-visit_time', '-id')
    if page and page_size:
        start = (page-1)*page_size
        qs = qs[start:start + page_size]
    return list(qs), total


def revisit_stats(today: Optional[date] = None) -> dict:
    today = today or timezone.localdate()
    qs = PatientRevisit.objects.all()
    return {
        'total': qs.count(),
        'today': qs.filter(visit_date=today).count(),
        'thisMonth': qs.filter(visit_date__gte=today.replace(day=1), visit_date__lte=today).count(),
    }


def visit_history(patient: Patient, limit: int = 5) -> dict:
    """Recent revisits plus the first registration, for the revisit form."""
    visits = patient_revisits(patient, limit=limit)
    return {
        'uhid': patient.uhid,
        'registeredAt': patient.created_at.isoformat() if patient.created_at else None,
        'visitCount': patient.revisits.count(),
        'lastDiagnosis': next((v.current_diagnosis for v in visits if v.current_diagnosis), ''),
        'visits': [revisit_to_dict(v) for v in visits],
    }


def revisit_to_dict(r: PatientRevisit) -> dict:
    return {
        'id': r.id,
        'patientId': r.patient_id,
        'uhid': r.patient.uhid,
        'patientName': r.patient.full_name,
        'visitDate': r.visit_date.isoformat(),
        'visitTime': r.visit_time.strftime('%H:%M'),
        'visitType': r.visit_type,
        'doctorId': r.doctor_id,
        'doctorName': r.doctor.name if r.doctor else None,
        'departmentId': r.department_id,
        'departmentName': r.department.name if r.department else None,
        'appointmentId': r.appointment.appointment_id if r.appointment else None,
        'reasonForVisit': r.reason_for_visit,
        'symptoms': r.symptoms,
        'previousDiagnosis': r.previous_diagnosis,
        'currentDiagnosis': r.current_diagnosis,
        'consultationFee': str(r.consultation_fee),
        'paymentMode': r.payment_mode,
        'paymentStatus': r.payment_status,
        'notes': r.notes,
        'staff': r.staff.username if r.staff else None,
        'createdAt': r.created_at.isoformat() if r.created_at else None,
    }
