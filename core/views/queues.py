"""
Outpatient queue endpoints.

Front desk staff place patients in the day's queue and clinicians call
them in.  Entries move ``waiting -> in_progress -> completed`` (or are
cancelled); every change is recorded as a transition and broadcast on
the ``updates`` channel group.
"""
from __future__ import annotations

from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Patient
from ..permissions import IsClinician, IsFrontDesk
from ..serializers.queue import (
    CallNextSerializer,
    QueueAddSerializer,
    QueueListQuerySerializer,
    QueuePrioritySerializer,
    QueueStatusSerializer,
)
from ..services import queue as queue_service
from ..services.doctors import get_doctor
from ..services.patients import get_patient
from ..services.queue import entry_to_dict


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def queue_entries(request):
    """List a day's queue or add a patient to it.

    ``GET`` accepts ``date`` (default today), ``status`` and ``doctorId``
    and returns entries highest priority first, then by queue number.
    ``POST`` is restricted to front desk staff; adding a patient who is
    already queued for the day returns the existing entry.
    """
    if request.method == 'POST':
        if not IsFrontDesk().has_permission(request, None):
            return Response({'detail': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)
        s = QueueAddSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        if vd.get('uhid'):
            patient = get_patient(vd['uhid'])
        else:
            patient = Patient.objects.filter(id=vd['patientId']).first()
            if not patient:
                return Response({'detail': 'patient not found'}, status=status.HTTP_404_NOT_FOUND)
        doctor = get_doctor(vd['doctorId']) if vd.get('doctorId') else None
        entry = queue_service.add_to_queue(
            patient,
            day=vd.get('date'),
            priority=vd.get('priority', 0),
            notes=vd.get('notes', ''),
            staff=request.user,
            doctor=doctor,
        )
        return Response({'ok': True, 'data': entry_to_dict(entry)}, status=status.HTTP_201_CREATED)

    q = QueueListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    day = vd.get('date') or timezone.localdate()
    doctor = get_doctor(vd['doctorId']) if vd.get('doctorId') else None
    entries = queue_service.list_entries(day=day, status=vd.get('status'), doctor=doctor)
    return Response({'ok': True, 'date': day.isoformat(), 'data': [entry_to_dict(e) for e in entries]})


@api_view(['GET', 'DELETE'])
@permission_classes([IsAuthenticated])
def queue_entry_detail(request, entry_id: int):
    entry = queue_service.get_entry(entry_id)
    if request.method == 'GET':
        return Response({'ok': True, 'data': entry_to_dict(entry, with_history=True)})
    if not IsFrontDesk().has_permission(request, None):
        return Response({'detail': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)
    queue_service.remove_from_queue(request.user, entry)
    return Response({'ok': True})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFrontDesk | IsClinician])
def queue_entry_status(request, entry_id: int):
    s = QueueStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    entry = queue_service.get_entry(entry_id)
    entry = queue_service.update_status(
        request.user, entry, s.validated_data['status'], s.validated_data.get('reason', ''),
    )
    return Response({'ok': True, 'data': entry_to_dict(entry)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def queue_entry_priority(request, entry_id: int):
    s = QueuePrioritySerializer(data=request.data)
    s.is_valid(raise_exception=True)
    entry = queue_service.set_priority(request.user, queue_service.get_entry(entry_id),
                                       s.validated_data['priority'])
    return Response({'ok': True, 'data': entry_to_dict(entry)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinician])
def call_next(request):
    """Move the next waiting patient to ``in_progress``.

    Returns ``data: null`` when nobody is waiting.
    """
    s = CallNextSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    doctor = get_doctor(vd['doctorId']) if vd.get('doctorId') else getattr(request.user, 'doctor_profile', None)
    entry = queue_service.call_next(request.user, day=vd.get('date'), doctor=doctor)
    return Response({'ok': True, 'data': entry_to_dict(entry) if entry else None})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def queue_stats(request):
    q = QueueListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    day = q.validated_data.get('date') or timezone.localdate()
    return Response({'ok': True, 'date': day.isoformat(), 'data': queue_service.queue_stats(day)})
