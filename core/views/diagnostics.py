"""
Lab, radiology, scan and X-ray endpoints.

Clinicians place orders (singly or as a group order), lab staff move
them through collection and processing and record results.  The test
catalog and the group templates are maintained by lab staff and
administrators.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Appointment
from ..permissions import IsClinician, IsLabRole
from ..serializers.diagnostics import (
    CatalogQuerySerializer,
    CatalogTestSerializer,
    GroupItemSerializer,
    GroupItemUpdateSerializer,
    GroupOrderSerializer,
    GroupSerializer,
    OrderCreateSerializer,
    OrderFieldsSerializer,
    OrderListQuerySerializer,
    OrderStatusSerializer,
    ResultsSerializer,
    ResultUpdateSerializer,
)
from ..services import diagnostics as diagnostic_service
from ..services.diagnostics import group_order_to_dict, group_to_dict, order_to_dict, result_to_dict, test_to_dict
from ..services.doctors import get_doctor
from ..services.patients import get_patient


def _forbidden():
    return Response({'detail': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)


def _resolve_links(data: dict) -> dict:
    """Swap the appointment code and doctor id in ``data`` for model instances."""
    code = data.pop('appointment_code', None)
    if code:
        appointment = Appointment.objects.select_related('doctor').filter(appointment_id=code).first()
        if not appointment:
            raise NotFound('appointment not found')
        data['appointment'] = appointment
    doctor_id = data.pop('ordering_doctor_id', None)
    if doctor_id:
        data['ordering_doctor'] = get_doctor(doctor_id)
    return data


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def catalog(request):
    """List catalog tests or, for lab staff, add one."""
    if request.method == 'POST':
        if not IsLabRole().has_permission(request, None):
            return _forbidden()
        s = CatalogTestSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        test = diagnostic_service.create_test(request.user, dict(s.validated_data))
        return Response({'ok': True, 'data': test_to_dict(test)}, status=status.HTTP_201_CREATED)
    q = CatalogQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    tests = diagnostic_service.list_tests(
        service_type=vd.get('serviceType'),
        category=vd.get('category'),
        search=(vd.get('q') or '').strip() or None,
        include_inactive=vd['includeInactive'],
    )
    return Response({'ok': True, 'data': [test_to_dict(t) for t in tests]})


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def catalog_detail(request, test_id: int):
    test = diagnostic_service.get_test(test_id)
    if request.method == 'GET':
        return Response({'ok': True, 'data': test_to_dict(test)})
    if not IsLabRole().has_permission(request, None):
        return _forbidden()
    s = CatalogTestSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    test = diagnostic_service.update_test(request.user, test, dict(s.validated_data))
    return Response({'ok': True, 'data': test_to_dict(test)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def catalog_categories(request):
    service_type = request.query_params.get('serviceType') or None
    return Response({'ok': True, 'data': diagnostic_service.list_categories(service_type)})


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def orders(request):
    """List orders (any staff) or place one (clinicians)."""
    if request.method == 'POST':
        if not IsClinician().has_permission(request, None):
            return _forbidden()
        s = OrderCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = dict(s.validated_data)
        patient = get_patient(data.pop('uhid'))
        test = diagnostic_service.get_test(data.pop('test_id'))
        data = _resolve_links(data)
        order = diagnostic_service.create_order(request.user, patient, test, **data)
        return Response({'ok': True, 'data': order_to_dict(diagnostic_service.get_order(order.id))},
                        status=status.HTTP_201_CREATED)

    q = OrderListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    page = vd.get('page', 1)
    page_size = vd.get('pageSize', 20)
    items, total = diagnostic_service.list_orders(
        service_type=vd.get('serviceType'),
        status=vd.get('status'),
        patient=get_patient(vd['uhid']) if vd.get('uhid') else None,
        urgency=vd.get('urgency'),
        date_from=vd.get('dateFrom'),
        date_to=vd.get('dateTo'),
        search=(vd.get('q') or '').strip() or None,
        page=page,
        page_size=page_size,
    )
    return Response({
        'ok': True,
        'data': [order_to_dict(o) for o in items],
        'pagination': {'total': total, 'page': page, 'pageSize': page_size},
    })


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def order_detail(request, order_id: str):
    """``order_id`` is either the numeric id or the order number."""
    order = diagnostic_service.get_order(order_id)
    if request.method == 'GET':
        data = order_to_dict(order)
        data['results'] = [result_to_dict(r) for r in diagnostic_service.order_results(order)]
        return Response({'ok': True, 'data': data})
    if not IsClinician().has_permission(request, None):
        return _forbidden()
    if request.method == 'DELETE':
        diagnostic_service.delete_order(request.user, order)
        return Response({'ok': True})
    s = OrderFieldsSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    data = _resolve_links(dict(s.validated_data))
    order = diagnostic_service.update_order(request.user, order, data)
    return Response({'ok': True, 'data': order_to_dict(diagnostic_service.get_order(order.id))})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsLabRole | IsClinician])
def order_status(request, order_id: str):
    s = OrderStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    order = diagnostic_service.update_order_status(
        request.user,
        diagnostic_service.get_order(order_id),
        vd['status'],
        sample_id=vd.get('sampleId', ''),
        collected_by=vd.get('collectedBy', ''),
    )
    return Response({'ok': True, 'data': order_to_dict(order)})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def order_results(request, order_id: str):
    order = diagnostic_service.get_order(order_id)
    if request.method == 'GET':
        return Response({'ok': True, 'data': [result_to_dict(r) for r in diagnostic_service.order_results(order)]})
    if not IsLabRole().has_permission(request, None):
        return _forbidden()
    s = ResultsSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    created = diagnostic_service.add_lab_results(request.user, order, [dict(r) for r in s.validated_data['results']])
    return Response({
        'ok': True,
        'orderStatus': 'completed',
        'data': [result_to_dict(r) for r in created],
    }, status=status.HTTP_201_CREATED)


@api_view(['PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsLabRole])
def result_detail(request, result_id: int):
    result = diagnostic_service.get_result(result_id)
    if request.method == 'DELETE':
        diagnostic_service.delete_result(request.user, result)
        return Response({'ok': True})
    s = ResultUpdateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    result = diagnostic_service.update_result(request.user, result, dict(s.validated_data))
    return Response({'ok': True, 'data': result_to_dict(result)})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def patient_orders(request, uhid: str):
    patient = get_patient(uhid)
    service_type = request.query_params.get('serviceType') or None
    return Response({
        'ok': True,
        'data': [order_to_dict(o) for o in diagnostic_service.patient_orders(patient, service_type)],
        'groupOrders': [group_order_to_dict(g) for g in diagnostic_service.patient_group_orders(patient)],
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def diagnostic_stats(request):
    return Response({'ok': True, 'data': diagnostic_service.diagnostic_stats()})


# ---------------------------------------------------------------------------
# Groups and group orders
# ---------------------------------------------------------------------------

@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def groups(request):
    if request.method == 'POST':
        if not IsLabRole().has_permission(request, None):
            return _forbidden()
        s = GroupSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = dict(s.validated_data)
        data['items'] = [dict(i) for i in data.get('items') or []]
        group = diagnostic_service.create_group(request.user, data)
        return Response({'ok': True, 'data': group_to_dict(group)}, status=status.HTTP_201_CREATED)
    include_inactive = (request.query_params.get('includeInactive') or '0') in ['1', 'true', 'True']
    found = diagnostic_service.list_groups(include_inactive, request.query_params.get('serviceType') or None)
    return Response({'ok': True, 'data': [group_to_dict(g) for g in found]})


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def group_detail(request, group_id: int):
    group = diagnostic_service.get_group(group_id)
    if request.method == 'GET':
        return Response({'ok': True, 'data': group_to_dict(group)})
    if not IsLabRole().has_permission(request, None):
        return _forbidden()
    if request.method == 'DELETE':
        diagnostic_service.delete_group(request.user, group)
        return Response({'ok': True})
    s = GroupSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    data.pop('items', None)
    group = diagnostic_service.update_group(request.user, group, data)
    return Response({'ok': True, 'data': group_to_dict(group)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsLabRole])
def group_items(request, group_id: int):
    group = diagnostic_service.get_group(group_id)
    s = GroupItemSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    diagnostic_service.add_group_item(group, diagnostic_service.get_test(vd['test_id']),
                                      vd.get('default_selected', True), vd.get('sort_order'))
    return Response({'ok': True, 'data': group_to_dict(diagnostic_service.get_group(group.id))},
                    status=status.HTTP_201_CREATED)


@api_view(['PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsLabRole])
def group_item_detail(request, item_id: int):
    item = diagnostic_service.get_group_item(item_id)
    group_id = item.group_id
    if request.method == 'DELETE':
        diagnostic_service.delete_group_item(item)
    else:
        s = GroupItemUpdateSerializer(data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        diagnostic_service.update_group_item(item, dict(s.validated_data))
    return Response({'ok': True, 'data': group_to_dict(diagnostic_service.get_group(group_id))})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsClinician])
def group_orders(request):
    """Order a template's default tests, or an explicit list of tests, together."""
    s = GroupOrderSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    patient = get_patient(data.pop('uhid'))
    group_id = data.pop('group_id', None)
    group = diagnostic_service.get_group(group_id) if group_id else None
    data = _resolve_links(data)
    group_order = diagnostic_service.create_group_order(
        request.user,
        patient,
        group=group,
        test_ids=data.get('test_ids'),
        appointment=data.get('appointment'),
        ordering_doctor=data.get('ordering_doctor'),
        clinical_indication=data.get('clinical_indication', ''),
        urgency=data.get('urgency', 'routine'),
    )
    return Response({'ok': True, 'data': group_order_to_dict(group_order)}, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def group_order_detail(request, group_order_id: int):
    group_order = diagnostic_service.get_group_order(group_order_id)
    return Response({'ok': True, 'data': group_order_to_dict(group_order)})
