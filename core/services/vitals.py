import logging
from decimal import Decimal
from typing import Optional

from django.db import transaction
from rest_framework.exceptions import ValidationError

from core.models import Patient, VitalRecord
from core.services.audit import log_action
from core.services.events import publish
from core.services.queue import patient_queue_entry

logger = logging.getLogger(__name__)

# accepted (low, high) bounds per measurement
VITAL_RANGES = {
    'bp_systolic': (50, 260),
    'bp_diastolic': (30, 160),
    'heart_rate': (20, 250),
    'temperature': (30, 45),
    'respiratory_rate': (5, 60),
    'oxygen_saturation': (50, 100),
    'weight': (0.5, 400),
    'height': (30, 250),
    'pain_scale': (0, 10),
    'blood_glucose': (20, 600),
}


def _check_ranges(values: dict) -> None:
    errors = {}
    for field, (low, high) in VITAL_RANGES.items():
        value = values.get(field)
        if value is None:
            continue
        if not (low <= float(value) <= high):
            errors[field] = f'must be between {low} and {high}'
    systolic, diastolic = values.get('bp_systolic'), values.get('bp_diastolic')
    if systolic is not None and diastolic is not None and diastolic >= systolic:
        errors['bp_diastolic'] = 'must be lower than systolic pressure'
    if errors:
        raise ValidationError(errors)


def record_vitals(patient: Patient, values: dict, recorded_by=None, queue_entry=None) -> VitalRecord:
    """Store a set of vitals; the first set completes a pending registration."""
    if not any(values.get(f) is not None for f in VITAL_RANGES):
        raise ValidationError({'detail': 'at least one vital sign is required'})
    _check_ranges(values)
    recorded_by = recorded_by if getattr(recorded_by, 'is_authenticated', False) else None
    with transaction.atomic():
        record = VitalRecord(
            patient=patient,
            queue_entry=queue_entry or patient_queue_entry(patient),
            notes=values.get('notes') or '',
            recorded_by=recorded_by,
        )
        for field in VITAL_RANGES:
            if values.get(field) is not None:
                setattr(record, field, values[field])
        record.save()
        locked = Patient.objects.select_for_update().get(id=patient.id)
        if locked.registration_status == 'pending_vitals':
            locked.registration_status = 'completed'
            locked.vitals_completed_at = record.recorded_at
            locked.save(update_fields=['registration_status', 'vitals_completed_at', 'updated_at'])
            patient.registration_status = locked.registration_status
            patient.vitals_completed_at = locked.vitals_completed_at
            logger.info('registration completed for %s after vitals', patient.uhid)
    publish('vitals', action='recorded', patientId=patient.id, uhid=patient.uhid)
    log_action(user=recorded_by, action='vitals_record', object_type='patient', object_id=patient.uhid,
               detail={'record': record.id})
    return record


def patient_vitals(patient: Patient, limit: Optional[int] = None) -> list[VitalRecord]:
    qs = patient.vitals.select_related('recorded_by').order_by('-recorded_at', '-id')
    return list(qs[:limit] if limit else qs)


def latest_vitals(patient: Patient) -> Optional[VitalRecord]:
    return patient.vitals.select_related('recorded_by').order_by('-recorded_at', '-id').first()


def bmi(weight, height) -> Optional[float]:
    if not weight or not height:
        return None
    metres = Decimal(height) / 100
    return round(float(Decimal(weight) / (metres * metres)), 1)


def bmi_category(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    if value < 18.5:
        return 'underweight'
    if value < 25:
        return 'normal'
    if value < 30:
        return 'overweight'
    return 'obese'


def vitals_summary(patient: Patient) -> dict:
    latest = latest_vitals(patient)
    sized = patient.vitals.filter(weight__isnull=False, height__isnull=False).order_by('-recorded_at', '-id').first()
    value = bmi(sized.weight, sized.height) if sized else None
    return {
        'uhid': patient.uhid,
        'recordCount': patient.vitals.count(),
        'latest': vitals_to_dict(latest) if latest else None,
        'bmi': value,
        'bmiCategory': bmi_category(value),
        'registrationStatus': patient.registration_status,
    }


def _num(value):
    return float(value) if value is not None else None


def vitals_to_dict(v: VitalRecord) -> dict:
    return {
        'id': v.id,
        'patientId': v.patient_id,
        'queueEntryId': v.queue_entry_id,
        'bloodPressure': f'{v.bp_systolic}/{v.bp_diastolic}' if v.bp_systolic and v.bp_diastolic else None,
        'bpSystolic': v.bp_systolic,
        'bpDiastolic': v.bp_diastolic,
        'heartRate': v.heart_rate,
        'temperature': _num(v.temperature),
        'respiratoryRate': v.respiratory_rate,
        'oxygenSaturation': v.oxygen_saturation,
        'weight': _num(v.weight),
        'height': _num(v.height),
        'bmi': bmi(v.weight, v.height),
        'painScale': v.pain_scale,
        'bloodGlucose': _num(v.blood_glucose),
        'notes': v.notes,
        'recordedBy': v.recorded_by.username if v.recorded_by else None,
        'recordedAt': v.recorded_at.isoformat(),
    }
