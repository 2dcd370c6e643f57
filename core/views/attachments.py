from rest_framework import status
from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..permissions import IsClinician, IsLabRole
from ..serializers.diagnostics import AttachmentUpdateSerializer, AttachmentUploadSerializer
from ..services import attachments as attachment_service
from ..services.attachments import attachment_to_dict
from ..services.diagnostics import get_group_order, get_order
from ..services.patients import get_patient


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsLabRole | IsClinician])
@parser_classes([MultiPartParser, FormParser])
def upload_attachment(request):
    """Attach a report file to a diagnostic order or group order."""
    s = AttachmentUploadSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    patient = get_patient(vd['uhid'])
    order = get_order(vd['orderId']) if vd.get('orderId') else None
    group_order = get_group_order(vd['groupOrderId']) if vd.get('groupOrderId') else None
    attachment = attachment_service.upload_attachment(
        request.user,
        patient,
        vd['file'],
        order=order,
        group_order=group_order,
        test_name=vd.get('testName', ''),
        test_type=vd.get('testType'),
    )
    return Response({'ok': True, 'data': attachment_to_dict(attachment, request)}, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def list_attachments(request):
    uhid = request.query_params.get('uhid')
    order_id = request.query_params.get('orderId')
    group_order_id = request.query_params.get('groupOrderId')
    if not (uhid or order_id or group_order_id):
        return Response({'detail': 'uhid, orderId or groupOrderId is required'}, status=status.HTTP_400_BAD_REQUEST)
    if group_order_id and not group_order_id.isdigit():
        return Response({'detail': 'invalid groupOrderId'}, status=status.HTTP_400_BAD_REQUEST)
    found = attachment_service.list_attachments(
        patient=get_patient(uhid) if uhid else None,
        order=get_order(order_id) if order_id else None,
        group_order=get_group_order(group_order_id) if group_order_id else None,
        test_type=request.query_params.get('testType') or None,
    )
    return Response({'ok': True, 'data': [attachment_to_dict(a, request) for a in found]})


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def attachment_detail(request, attachment_id: int):
    attachment = attachment_service.get_attachment(attachment_id)
    if request.method == 'GET':
        return Response({'ok': True, 'data': attachment_to_dict(attachment, request)})
    if not (IsLabRole().has_permission(request, None) or IsClinician().has_permission(request, None)):
        return Response({'detail': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)
    if request.method == 'DELETE':
        attachment_service.delete_attachment(request.user, attachment)
        return Response({'ok': True})
    s = AttachmentUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    attachment = attachment_service.update_attachment(request.user, attachment, s.validated_data['testName'])
    return Response({'ok': True, 'data': attachment_to_dict(attachment, request)})
