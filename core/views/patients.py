"""
Patient registration and lookup endpoints.

Front desk staff register patients in standard, quick or emergency mode
and may place them in today's queue and book a first appointment in the
same request.  Every staff member can look patients up; only
administrators deactivate them.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle

from core.permissions import IsAdminRole, IsClinician, IsFrontDesk
from core.serializers.patient import (
    PatientListQuerySerializer,
    PatientRegisterSerializer,
    PatientUpdateSerializer,
    VitalsSerializer,
)
from core.services import patients as patient_service
from core.services import queue as queue_service
from core.services import vitals as vitals_service
from core.services.appointments import appointment_to_dict
from core.services.queue import entry_to_dict


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFrontDesk])
@throttle_classes([ScopedRateThrottle])
def register_patient(request):
    s = PatientRegisterSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    mode = data.pop('mode', 'standard')
    add_to_queue = data.pop('add_to_queue', False)
    appointment = data.pop('appointment', None)
    patient, entry, booked = patient_service.register_patient(
        request.user, data, mode=mode, add_to_queue=add_to_queue, appointment=appointment,
    )
    return Response({
        'ok': True,
        'uhid': patient.uhid,
        'patient': patient_service.patient_to_dict(patient),
        'queueEntry': entry_to_dict(entry) if entry else None,
        'appointment': appointment_to_dict(booked) if booked else None,
    }, status=status.HTTP_201_CREATED)


# the scope is read from the wrapped APIView class
register_patient.cls.throttle_scope = 'patient_write'


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def list_patients(request):
    q = PatientListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    page = q.validated_data.get('page', 1)
    page_size = q.validated_data.get('pageSize', 20)
    patients, total = patient_service.list_patients(
        search=(q.validated_data.get('q') or '').strip() or None,
        status=q.validated_data.get('status'),
        registration_status=q.validated_data.get('registrationStatus'),
        department_id=q.validated_data.get('departmentId'),
        page=page,
        page_size=page_size,
    )
    return Response({
        'ok': True,
        'data': [patient_service.patient_to_dict(p) for p in patients],
        'pagination': {'total': total, 'page': page, 'pageSize': page_size},
    })


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def patient_detail(request, uhid: str):
    patient = patient_service.get_patient(uhid)
    if request.method == 'GET':
        return Response({'ok': True, 'data': patient_service.patient_to_dict(patient)})
    if not IsFrontDesk().has_permission(request, None):
        return Response({'detail': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)
    s = PatientUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    patient = patient_service.update_patient(request.user, patient, dict(s.validated_data))
    return Response({'ok': True, 'data': patient_service.patient_to_dict(patient)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def deactivate_patient(request, uhid: str):
    patient = patient_service.deactivate_patient(request.user, patient_service.get_patient(uhid))
    return Response({'ok': True, 'uhid': patient.uhid, 'status': patient.status})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def patient_overview(request, uhid: str):
    patient = patient_service.get_patient(uhid)
    return Response({'ok': True, 'data': patient_service.patient_overview(patient)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def check_uhid(request):
    uhid = (request.query_params.get('uhid') or '').strip()
    if not uhid:
        return Response({'detail': 'missing uhid'}, status=status.HTTP_400_BAD_REQUEST)
    return Response({'ok': True, 'uhid': uhid, 'available': patient_service.validate_uhid_unique(uhid)})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsClinician | IsFrontDesk])
def patient_vitals(request, uhid: str):
    """List a patient's vitals, newest first, or record a new set."""
    patient = patient_service.get_patient(uhid)
    if request.method == 'GET':
        records = vitals_service.patient_vitals(patient, limit=50)
        return Response({'ok': True, 'data': [vitals_service.vitals_to_dict(v) for v in records]})
    s = VitalsSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    record = vitals_service.record_vitals(patient, dict(s.validated_data), recorded_by=request.user)
    return Response({
        'ok': True,
        'data': vitals_service.vitals_to_dict(record),
        'registrationStatus': patient.registration_status,
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def vitals_summary(request, uhid: str):
    patient = patient_service.get_patient(uhid)
    return Response({'ok': True, 'data': vitals_service.vitals_summary(patient)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsClinician | IsFrontDesk])
def pending_vitals(request):
    patients = queue_service.patients_pending_vitals()
    return Response({'ok': True, 'data': [patient_service.patient_to_dict(p) for p in patients]})
