"""
Outpatient queue.

Each patient gets at most one entry per day, numbered sequentially.
Entries are served by priority (higher first) then by number.  Every
status change is written to ``QueueTransition`` and broadcast to the
``updates`` websocket group once the transaction commits.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from django.db import IntegrityError, transaction
from django.db.models import Max, Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from core.exceptions import InvalidTransition
from core.models import Patient, QueueEntry, QueueTransition
from core.services.audit import log_action
from core.services.events import publish

logger = logging.getLogger(__name__)

NUMBER_ATTEMPTS = 3


def _can_transition(current: str, new: str) -> bool:
    """Return True if the queue entry may transition from ``current`` to ``new``."""
    transitions = {
        'waiting': ['in_progress', 'cancelled'],
        'in_progress': ['completed', 'cancelled'],
        'completed': [],
        'cancelled': [],
    }
    return new in transitions.get(current, [])


def _next_number(day: date) -> int:
    current = QueueEntry.objects.filter(queue_date=day).aggregate(m=Max('queue_number'))['m']
    return (current or 0) + 1


def add_to_queue(patient: Patient, day: Optional[date] = None, priority: int = 0, notes: str = '',
                 staff=None, doctor=None) -> QueueEntry:
    """Place ``patient`` in the queue for ``day``.

    A patient already queued that day gets the existing entry back.
    """
    day = day or timezone.localdate()
    existing = QueueEntry.objects.filter(patient=patient, queue_date=day).first()
    if existing:
        return existing
    staff = staff if getattr(staff, 'is_authenticated', False) else None
    for attempt in range(NUMBER_ATTEMPTS):
        try:
            with transaction.atomic():
                entry = QueueEntry.objects.create(
                    patient=patient, queue_date=day, queue_number=_next_number(day),
                    priority=priority or 0, notes=notes or '', staff=staff, doctor=doctor,
                )
                QueueTransition.objects.create(entry=entry, from_status=None, to_status='waiting',
                                               operator=staff, reason='added to queue')
            break
        except IntegrityError:
            # lost the race for a number, or the patient was queued concurrently
            existing = QueueEntry.objects.filter(patient=patient, queue_date=day).first()
            if existing:
                return existing
            logger.warning('queue number collision on %s (attempt %d)', day, attempt + 1)
    else:
        raise ValidationError({'queue': 'could not allocate a queue number, try again'})
    publish('queue', action='added', entryId=entry.id, queueDate=day.isoformat(), queueNumber=entry.queue_number)
    log_action(user=staff, action='queue_add', object_type='patient', object_id=patient.uhid,
               detail={'queueNumber': entry.queue_number, 'date': day.isoformat()})
    return entry


def get_entry(entry_id) -> QueueEntry:
    entry = (
        QueueEntry.objects.select_related('patient', 'doctor__user', 'staff')
        .filter(id=entry_id)
        .first()
    )
    if not entry:
        raise NotFound('queue entry not found')
    return entry


def list_entries(day: Optional[date] = None, status: Optional[str] = None, doctor=None) -> list[QueueEntry]:
    day = day or timezone.localdate()
    qs = QueueEntry.objects.select_related('patient', 'doctor__user', 'staff').filter(queue_date=day)
    if status:
        qs = qs.filter(status=status)
    if doctor is not None:
        qs = qs.filter(doctor=doctor)
    return list(qs.order_by('-priority', 'queue_number'))


def _transition(entry: QueueEntry, new_status: str, operator, reason: str) -> QueueEntry:
    """Apply a checked status change to a locked entry."""
    if not _can_transition(entry.status, new_status):
        raise InvalidTransition(entry.status, new_status)
    old_status = entry.status
    now = timezone.now()
    entry.status = new_status
    if new_status == 'in_progress':
        entry.called_at = now
    if new_status == 'completed':
        entry.completed_at = now
        patient = entry.patient
        if patient.registration_status != 'completed':
            patient.registration_status = 'completed'
            patient.vitals_completed_at = patient.vitals_completed_at or now
            patient.save(update_fields=['registration_status', 'vitals_completed_at', 'updated_at'])
    entry.save()
    QueueTransition.objects.create(
        entry=entry,
        from_status=old_status,
        to_status=new_status,
        operator=operator if getattr(operator, 'is_authenticated', False) else None,
        reason=(reason or '')[:255],
    )
    return entry


def update_status(actor, entry: QueueEntry, new_status: str, reason: str = '') -> QueueEntry:
    with transaction.atomic():
        locked = QueueEntry.objects.select_for_update().select_related('patient').get(id=entry.id)
        old_status = locked.status
        _transition(locked, new_status, actor, reason or 'status update')
    publish('queue', action='status', entryId=locked.id, queueDate=locked.queue_date.isoformat(),
            status=new_status)
    log_action(user=actor, action='queue_status', object_type='queue', object_id=locked.id,
               detail={'from': old_status, 'to': new_status})
    return locked


def call_next(actor, day: Optional[date] = None, doctor=None) -> Optional[QueueEntry]:
    """Move the highest priority waiting entry to ``in_progress``.

    With a doctor, entries assigned to someone else are skipped.
    Returns ``None`` when nobody is waiting.
    """
    day = day or timezone.localdate()
    with transaction.atomic():
        qs = QueueEntry.objects.select_for_update().filter(queue_date=day, status='waiting')
        if doctor is not None:
            qs = qs.filter(Q(doctor=doctor) | Q(doctor__isnull=True))
        entry = qs.order_by('-priority', 'queue_number').first()
        if entry is None:
            return None
        if doctor is not None and entry.doctor_id is None:
            entry.doctor = doctor
        _transition(entry, 'in_progress', actor, 'called')
    publish('queue', action='called', entryId=entry.id, queueDate=day.isoformat(), queueNumber=entry.queue_number)
    log_action(user=actor, action='queue_call', object_type='queue', object_id=entry.id,
               detail={'queueNumber': entry.queue_number})
    return get_entry(entry.id)


def set_priority(actor, entry: QueueEntry, priority: int) -> QueueEntry:
    if entry.status not in ('waiting', 'in_progress'):
        raise ValidationError({'priority': 'only active entries can be re-prioritised'})
    entry.priority = priority
    entry.save(update_fields=['priority', 'updated_at'])
    publish('queue', action='priority', entryId=entry.id, queueDate=entry.queue_date.isoformat(), priority=priority)
    log_action(user=actor, action='queue_priority', object_type='queue', object_id=entry.id,
               detail={'priority': priority})
    return entry


def remove_from_queue(actor, entry: QueueEntry) -> None:
    entry_id, day = entry.id, entry.queue_date
    uhid = entry.patient.uhid
    entry.delete()
    publish('queue', action='removed', entryId=entry_id, queueDate=day.isoformat())
    log_action(user=actor, action='queue_remove', object_type='patient', object_id=uhid,
               detail={'entry': entry_id})


def queue_stats(day: Optional[date] = None) -> dict:
    day = day or timezone.localdate()
    entries = list(QueueEntry.objects.filter(queue_date=day))
    counts = {key: 0 for key, _ in QueueEntry.STATUS_CHOICES}
    waits = []
    for entry in entries:
        counts[entry.status] += 1
        if entry.status == 'completed':
            seen = entry.called_at or entry.completed_at
            if seen:
                waits.append((seen - entry.created_at).total_seconds() / 60)
    return {
        'date': day.isoformat(),
        'total': len(entries),
        'waiting': counts['waiting'],
        'inProgress': counts['in_progress'],
        'completed': counts['completed'],
        'cancelled': counts['cancelled'],
        'averageWaitMinutes': round(sum(waits) / len(waits), 1) if waits else 0,
    }


def patient_queue_entry(patient: Patient, day: Optional[date] = None) -> Optional[QueueEntry]:
    day = day or timezone.localdate()
    return (
        QueueEntry.objects.select_related('patient', 'doctor__user', 'staff')
        .filter(patient=patient, queue_date=day)
        .first()
    )


def patients_pending_vitals(day: Optional[date] = None) -> list[Patient]:
    """Active patients waiting for a nurse: queued today or registered today."""
    day = day or timezone.localdate()
    qs = (
        Patient.objects.filter(registration_status='pending_vitals', status='active')
        .filter(
            Q(queue_entries__queue_date=day, queue_entries__status__in=['waiting', 'in_progress'])
            | Q(created_at__date=day)
        )
        .distinct()
    )
    return list(qs.order_by('created_at'))


def entry_to_dict(e: QueueEntry, with_history: bool = False) -> dict:
    data = {
        'id': e.id,
        'patientId': e.patient_id,
        'uhid': e.patient.uhid,
        'patientName': e.patient.full_name,
        'queueDate': e.queue_date.isoformat(),
        'queueNumber': e.queue_number,
        'status': e.status,
        'priority': e.priority,
        'notes': e.notes,
        'doctorId': e.doctor_id,
        'doctorName': e.doctor.name if e.doctor else None,
        'staff': e.staff.username if e.staff else None,
        'registrationStatus': e.patient.registration_status,
        'createdAt': e.created_at.isoformat() if e.created_at else None,
        'calledAt': e.called_at.isoformat() if e.called_at else None,
        'completedAt': e.completed_at.isoformat() if e.completed_at else None,
    }
    if with_history:
        data['transitionHistory'] = [
            {
                'from': t.from_status,
                'to': t.to_status,
                'operator': t.operator.username if t.operator else '',
                'timestamp': t.timestamp.strftime('%Y-%m-%d %H:%M'),
                'reason': t.reason,
            }
            for t in e.transitions.select_related('operator').order_by('timestamp', 'id')
        ]
    return data
