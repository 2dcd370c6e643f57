"""
Diagnostic billing endpoints.

Every diagnostic order carries a billing item.  Front desk staff group
pending items into a bill, collect payment, or settle a single item
directly.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..permissions import IsFrontDesk
from ..serializers.billing import (
    BillCreateSerializer,
    BillingListQuerySerializer,
    BillingStatusSerializer,
    BillListQuerySerializer,
    PaymentSerializer,
)
from ..services import billing as billing_service
from ..services.billing import bill_to_dict, billing_item_to_dict
from ..services.patients import get_patient


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def billing_items(request):
    q = BillingListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    page = vd.get('page', 1)
    page_size = vd.get('pageSize', 20)
    items, total = billing_service.list_billing_items(
        status=vd.get('status'),
        order_type=vd.get('orderType'),
        patient=get_patient(vd['uhid']) if vd.get('uhid') else None,
        date_from=vd.get('dateFrom'),
        date_to=vd.get('dateTo'),
        search=(vd.get('q') or '').strip() or None,
        page=page,
        page_size=page_size,
    )
    return Response({
        'ok': True,
        'data': [billing_item_to_dict(i) for i in items],
        'pagination': {'total': total, 'page': page, 'pageSize': page_size},
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def billing_item_status(request, item_id: int):
    s = BillingStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    item = billing_service.update_billing_status(
        request.user,
        billing_service.get_billing_item(item_id),
        s.validated_data['status'],
        s.validated_data.get('paymentMethod', ''),
    )
    return Response({'ok': True, 'data': billing_item_to_dict(item)})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def bills(request):
    """List bills or issue one for a patient's pending items."""
    if request.method == 'POST':
        s = BillCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        bill = billing_service.create_bill(
            request.user,
            get_patient(vd['uhid']),
            vd['itemIds'],
            discount=vd['discount'],
            tax=vd['tax'],
            bill_type=vd['billType'],
            prefix=vd['prefix'].upper(),
        )
        return Response({'ok': True, 'data': bill_to_dict(bill, with_items=True)}, status=status.HTTP_201_CREATED)

    q = BillListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    page = vd.get('page', 1)
    page_size = vd.get('pageSize', 20)
    found, total = billing_service.list_bills(
        patient=get_patient(vd['uhid']) if vd.get('uhid') else None,
        payment_status=vd.get('paymentStatus'),
        date_from=vd.get('dateFrom'),
        date_to=vd.get('dateTo'),
        page=page,
        page_size=page_size,
    )
    return Response({
        'ok': True,
        'data': [bill_to_dict(b) for b in found],
        'pagination': {'total': total, 'page': page, 'pageSize': page_size},
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def bill_detail(request, bill_number: str):
    bill = billing_service.get_bill(bill_number)
    return Response({'ok': True, 'data': bill_to_dict(bill, with_items=True)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def bill_payment(request, bill_number: str):
    s = PaymentSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    bill = billing_service.record_payment(request.user, billing_service.get_bill(bill_number), vd['paymentMethod'],
                                          amount=vd.get('amount'), reference=vd.get('reference', ''))
    return Response({'ok': True, 'data': bill_to_dict(bill, with_items=True)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def billing_stats(request):
    return Response({'ok': True, 'data': billing_service.billing_stats()})
