from django.core.cache import cache
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.models import DoctorShift
from core.permissions import IsAdminRole
from core.serializers.doctor import (
    AvailabilitySerializer,
    AvailableDoctorsQuerySerializer,
    DoctorListQuerySerializer,
    DoctorSerializer,
    ShiftSerializer,
)
from core.services import doctors as doctor_service
from core.services import slots
from core.services.doctors import doctor_to_dict


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def doctors(request):
    """List the roster (cached) or, for administrators, add a doctor.

    Query params:
      - q: optional search (name / code / specialization)
      - specialization, departmentId: exact filters
      - onDutyOnly: only doctors with a shift covering now
      - status: active (default) | inactive | all
      - page, pageSize: pagination (optional)
    """
    if request.method == 'POST':
        if not IsAdminRole().has_permission(request, None):
            return Response({'detail': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)
        s = DoctorSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        doctor, password = doctor_service.create_doctor(request.user, dict(s.validated_data))
        return Response({
            'ok': True,
            'data': doctor_to_dict(doctor),
            'username': doctor.user.username,
            'initialPassword': password,
        }, status=status.HTTP_201_CREATED)

    q = DoctorListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    search = (vd.get('q') or '').strip() or None
    page, page_size = vd.get('page'), vd.get('pageSize')
    doctor_status = None if vd['status'] == 'all' else vd['status']

    cache_key = (
        f"doctors:v={doctor_service.cache_version()}:q={search or ''}:s={vd.get('specialization') or ''}"
        f":d={vd.get('departmentId') or ''}:duty={int(vd['onDutyOnly'])}:st={vd['status']}:p={page}:ps={page_size}"
    )
    # on-duty listings depend on the clock, so they are never cached
    cached = None if vd['onDutyOnly'] else cache.get(cache_key)
    if cached:
        return Response(cached)

    data, total = doctor_service.list_doctors(
        q=search,
        specialization=vd.get('specialization'),
        department_id=vd.get('departmentId'),
        on_duty_only=vd['onDutyOnly'],
        status=doctor_status,
        page=page,
        page_size=page_size,
    )
    payload = {'ok': True, 'data': data, 'pagination': {'total': total, 'page': page or 1, 'pageSize': page_size or total}}
    if not vd['onDutyOnly']:
        cache.set(cache_key, payload, doctor_service.cache_timeout())
    return Response(payload)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def doctor_detail(request, doctor_id: int):
    doctor = doctor_service.get_doctor(doctor_id)
    if request.method == 'GET':
        return Response({'ok': True, 'data': doctor_to_dict(doctor), 'stats': doctor_service.doctor_stats(doctor)})
    if not IsAdminRole().has_permission(request, None):
        return Response({'detail': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)
    if request.method == 'DELETE':
        outcome = doctor_service.delete_doctor(request.user, doctor)
        return Response({'ok': True, 'result': outcome})
    s = DoctorSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    doctor = doctor_service.update_doctor(request.user, doctor, dict(s.validated_data))
    return Response({'ok': True, 'data': doctor_to_dict(doctor_service.get_doctor(doctor.id))})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def doctor_availability(request, doctor_id: int):
    s = AvailabilitySerializer(data=request.data)
    s.is_valid(raise_exception=True)
    doctor = doctor_service.set_availability(request.user, doctor_service.get_doctor(doctor_id),
                                             s.validated_data['available'])
    return Response({'ok': True, 'doctorId': doctor.id, 'status': doctor.status})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def doctor_slots(request, doctor_id: int):
    """Free slots per session for one doctor and day (default today)."""
    doctor = doctor_service.get_doctor(doctor_id)
    q = AvailableDoctorsQuerySerializer(data={'date': request.query_params.get('date') or timezone.localdate()})
    q.is_valid(raise_exception=True)
    day = q.validated_data['date']
    return Response({'ok': True, 'date': day.isoformat(), 'data': doctor_service.doctor_session_slots(doctor, day)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def available_doctors(request):
    q = AvailableDoctorsQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    if vd.get('time') is None:
        data = doctor_service.doctors_with_slots(vd['date'], vd.get('specialization'))
    else:
        found = doctor_service.available_doctors(vd['date'], vd['time'], vd.get('specialization'))
        data = [doctor_to_dict(d) for d in found]
    return Response({'ok': True, 'date': vd['date'].isoformat(), 'data': data})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def specializations(request):
    cache_key = f'doctors:v={doctor_service.cache_version()}:specializations'
    data = cache.get(cache_key)
    if data is None:
        data = doctor_service.list_specializations()
        cache.set(cache_key, data, doctor_service.cache_timeout())
    return Response({'ok': True, 'data': data})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def doctor_stats(request):
    return Response({'ok': True, 'data': doctor_service.doctor_stats()})


def _shift_to_dict(shift: DoctorShift) -> dict:
    return {
        'id': shift.id,
        'doctorId': shift.doctor_id,
        'departmentId': shift.department_id,
        'startAt': shift.start_at.isoformat(),
        'endAt': shift.end_at.isoformat(),
    }


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def doctor_shifts(request, doctor_id: int):
    doctor = doctor_service.get_doctor(doctor_id)
    if request.method == 'GET':
        upcoming_only = (request.query_params.get('all') or '0') not in ['1', 'true', 'True']
        shifts = doctor_service.list_shifts(doctor, upcoming_only=upcoming_only)
        return Response({'ok': True, 'data': [_shift_to_dict(s) for s in shifts]})
    if not IsAdminRole().has_permission(request, None):
        return Response({'detail': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)
    s = ShiftSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    shift = doctor_service.add_shift(request.user, doctor, s.validated_data['startAt'], s.validated_data['endAt'])
    return Response({'ok': True, 'data': _shift_to_dict(shift)}, status=status.HTTP_201_CREATED)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def delete_shift(request, shift_id: int):
    shift = DoctorShift.objects.select_related('doctor').filter(id=shift_id).first()
    if not shift:
        return Response({'detail': 'not found'}, status=status.HTTP_404_NOT_FOUND)
    doctor_service.delete_shift(request.user, shift)
    return Response({'ok': True})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def slot_check(request, doctor_id: int):
    doctor = doctor_service.get_doctor(doctor_id)
    q = AvailableDoctorsQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    at = q.validated_data.get('time')
    if at is None:
        return Response({'detail': 'missing time'}, status=status.HTTP_400_BAD_REQUEST)
    day = q.validated_data['date']
    available = slots.works_on(doctor, day) and doctor_service.is_slot_available(doctor, day, at)
    return Response({'ok': True, 'doctorId': doctor.id, 'date': day.isoformat(),
                     'time': at.strftime('%H:%M'), 'available': available})
