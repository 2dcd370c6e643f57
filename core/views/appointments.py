"""
Appointment booking endpoints.

Bookings are validated against the hospital's business rules before
they are written.  A conflicting booking is answered with HTTP 409 and
up to five alternative slots (see ``core.exceptions.BookingConflict``).
"""
from __future__ import annotations

from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.permissions import IsClinician, IsFrontDesk
from core.serializers.appointment import (
    AppointmentCreateSerializer,
    AppointmentListQuerySerializer,
    AppointmentStatusSerializer,
    CancelSerializer,
    MedicalInfoSerializer,
    RescheduleSerializer,
    ScheduleQuerySerializer,
    SlotQuerySerializer,
)
from core.services import appointments as appointment_service
from core.services.appointments import appointment_to_dict
from core.services.doctors import get_doctor
from core.services.patients import get_patient

DEDICATED_ENDPOINTS = {
    'cancelled': 'use the cancel endpoint',
    'rescheduled': 'use the reschedule endpoint',
}


def _optional_doctor(request):
    doctor_id = request.query_params.get('doctorId')
    if not doctor_id:
        return None
    if not doctor_id.isdigit():
        raise ValidationError({'doctorId': 'must be a number'})
    return get_doctor(doctor_id)


def _booking_data(validated: dict) -> dict:
    data = dict(validated)
    uhid = data.pop('uhid', None)
    if uhid and not data.get('patient_id'):
        data['patient_id'] = get_patient(uhid).id
    return data


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def appointments(request):
    """List appointments (any staff) or book one (front desk and clinicians)."""
    if request.method == 'POST':
        if not (IsFrontDesk().has_permission(request, None) or IsClinician().has_permission(request, None)):
            return Response({'detail': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)
        s = AppointmentCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        appointment, result = appointment_service.create_appointment(_booking_data(s.validated_data),
                                                                     created_by=request.user)
        return Response({'ok': True, 'data': appointment_to_dict(appointment), 'warnings': result.warnings},
                        status=status.HTTP_201_CREATED)

    q = AppointmentListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    page = vd.get('page', 1)
    page_size = vd.get('pageSize', 20)
    items, total = appointment_service.list_appointments(
        patient_id=vd.get('patientId'),
        doctor_id=vd.get('doctorId'),
        day=vd.get('date'),
        date_from=vd.get('dateFrom'),
        date_to=vd.get('dateTo'),
        status=vd.get('status'),
        appointment_type=vd.get('type'),
        search=(vd.get('q') or '').strip() or None,
        page=page,
        page_size=page_size,
    )
    return Response({
        'ok': True,
        'data': [appointment_to_dict(a) for a in items],
        'pagination': {'total': total, 'page': page, 'pageSize': page_size},
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFrontDesk | IsClinician])
def validate_appointment(request):
    """Dry run: report errors, warnings and alternatives without booking."""
    s = AppointmentCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    result = appointment_service.validate_appointment_with_suggestions(_booking_data(s.validated_data))
    return Response({'ok': True, **result.to_dict()})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def appointment_detail(request, appointment_id: str):
    appointment = appointment_service.get_appointment(appointment_id)
    return Response({'ok': True, 'data': appointment_to_dict(appointment)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFrontDesk | IsClinician])
def appointment_status(request, appointment_id: str):
    s = AppointmentStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    new_status = s.validated_data['status']
    if new_status in DEDICATED_ENDPOINTS:
        return Response({'detail': DEDICATED_ENDPOINTS[new_status]}, status=status.HTTP_400_BAD_REQUEST)
    appointment = appointment_service.get_appointment(appointment_id)
    appointment = appointment_service.update_status(request.user, appointment, new_status)
    return Response({'ok': True, 'appointmentId': appointment.appointment_id, 'newStatus': appointment.status})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinician])
def appointment_medical_info(request, appointment_id: str):
    s = MedicalInfoSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appointment = appointment_service.get_appointment(appointment_id)
    appointment = appointment_service.update_medical_info(request.user, appointment, dict(s.validated_data))
    return Response({'ok': True, 'data': appointment_to_dict(appointment)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFrontDesk | IsClinician])
def reschedule_appointment(request, appointment_id: str):
    s = RescheduleSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appointment = appointment_service.get_appointment(appointment_id)
    appointment = appointment_service.reschedule_appointment(
        request.user, appointment, s.validated_data['date'], s.validated_data['time'],
    )
    return Response({'ok': True, 'data': appointment_to_dict(appointment_service.get_appointment(appointment_id))})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFrontDesk | IsClinician])
def cancel_appointment(request, appointment_id: str):
    s = CancelSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appointment = appointment_service.get_appointment(appointment_id)
    appointment = appointment_service.cancel_appointment(request.user, appointment, s.validated_data.get('reason', ''))
    return Response({'ok': True, 'appointmentId': appointment.appointment_id, 'newStatus': appointment.status})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def available_slots(request):
    q = SlotQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    doctor = get_doctor(q.validated_data['doctorId'])
    data = appointment_service.get_available_slots(doctor, q.validated_data['date'], q.validated_data['emergency'])
    return Response({'ok': True, 'data': data})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def doctor_schedule(request):
    q = ScheduleQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    doctor = get_doctor(q.validated_data['doctorId'])
    day = q.validated_data.get('date') or timezone.localdate()
    items = appointment_service.doctor_schedule(doctor, day)
    return Response({'ok': True, 'date': day.isoformat(), 'data': [appointment_to_dict(a) for a in items]})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def patient_appointments(request, uhid: str):
    patient = get_patient(uhid)
    try:
        limit = int(request.query_params.get('limit') or 10)
    except ValueError:
        return Response({'detail': 'invalid limit'}, status=status.HTTP_400_BAD_REQUEST)
    history = appointment_service.patient_history(patient, limit=limit)
    upcoming = appointment_service.upcoming_appointments(patient=patient)
    return Response({
        'ok': True,
        'history': [appointment_to_dict(a) for a in history],
        'upcoming': [appointment_to_dict(a) for a in upcoming],
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def upcoming_appointments(request):
    doctor = _optional_doctor(request)
    items = appointment_service.upcoming_appointments(doctor=doctor)
    return Response({'ok': True, 'data': [appointment_to_dict(a) for a in items]})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def appointment_stats(request):
    doctor = _optional_doctor(request)
    return Response({'ok': True, 'data': appointment_service.appointment_stats(doctor=doctor)})
