"""
Return visit endpoints.

Front desk staff record a revisit against an existing UHID; clinicians
may update the diagnosis fields afterwards.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.permissions import IsClinician, IsFrontDesk
from core.serializers.revisit import RevisitCreateSerializer, RevisitFieldsSerializer, RevisitListQuerySerializer
from core.services import patients as patient_service
from core.services import revisits as revisit_service
from core.services.appointments import appointment_to_dict
from core.services.doctors import get_doctor
from core.services.queue import entry_to_dict
from core.services.revisits import revisit_to_dict


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def patient_revisits(request, uhid: str):
    patient = patient_service.get_patient(uhid)
    if request.method == 'GET':
        visits = revisit_service.patient_revisits(patient)
        return Response({'ok': True, 'data': [revisit_to_dict(v) for v in visits]})
    if not IsFrontDesk().has_permission(request, None):
        return Response({'detail': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)
    s = RevisitCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    add_to_queue = data.pop('add_to_queue', False)
    appointment = data.pop('appointment', None)
    revisit, entry, booked = revisit_service.create_revisit(
        request.user, patient, data, add_to_queue=add_to_queue, appointment=appointment,
    )
    return Response({
        'ok': True,
        'data': revisit_to_dict(revisit_service.get_revisit(revisit.id)),
        'queueEntry': entry_to_dict(entry) if entry else None,
        'appointment': appointment_to_dict(booked) if booked else None,
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def visit_history(request, uhid: str):
    patient = patient_service.get_patient(uhid)
    limit = request.query_params.get('limit', '5')
    limit = int(limit) if limit.isdigit() and int(limit) > 0 else 5
    return Response({'ok': True, 'data': revisit_service.visit_history(patient, limit=min(limit, 50))})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def revisits(request):
    q = RevisitListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    page = vd.get('page', 1)
    page_size = vd.get('pageSize', 20)
    items, total = revisit_service.list_revisits(
        date_from=vd.get('dateFrom'),
        date_to=vd.get('dateTo'),
        doctor=get_doctor(vd['doctorId']) if vd.get('doctorId') else None,
        visit_type=vd.get('visitType'),
        page=page,
        page_size=page_size,
    )
    return Response({
        'ok': True,
        'data': [revisit_to_dict(r) for r in items],
        'pagination': {'total': total, 'page': page, 'pageSize': page_size},
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def revisit_stats(request):
    return Response({'ok': True, 'data': revisit_service.revisit_stats()})


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def revisit_detail(request, revisit_id: int):
    revisit = revisit_service.get_revisit(revisit_id)
    if request.method == 'GET':
        return Response({'ok': True, 'data': revisit_to_dict(revisit)})
    if not (IsFrontDesk().has_permission(request, None) or IsClinician().has_permission(request, None)):
        return Response({'detail': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)
    s = RevisitFieldsSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    revisit = revisit_service.update_revisit(request.user, revisit, dict(s.validated_data))
    return Response({'ok': True, 'data': revisit_to_dict(revisit_service.get_revisit(revisit.id))})
