import logging
from typing import Optional

import bleach
from django.conf import settings
from django.db import transaction
from rest_framework.exceptions import NotFound, ValidationError

from core.models import DiagnosticOrder, GroupOrder, LabAttachment, Patient
from core.services.audit import log_action

logger = logging.getLogger(__name__)


def _type_allowed(content_type: str) -> bool:
    # entries ending in "/" admit a whole family, e.g. "image/"
    for allowed in settings.ATTACHMENT_ALLOWED_TYPES:
        if allowed.endswith('/') and content_type.startswith(allowed):
            return True
        if content_type == allowed:
            return True
    return False


def validate_upload(upload) -> str:
    size_mb = (upload.size or 0) / (1024*1024)
    if size_mb > settings.ATTACHMENT_MAX_MB:
        raise ValidationError({'file': f'file exceeds {settings.ATTACHMENT_MAX_MB} MB'})
    content_type = (getattr(upload, 'content_type', '') or '').lower()
    if not _type_allowed(content_type):
        raise ValidationError({'file': f'unsupported file type {content_type or "unknown"}'})
    return content_type


@transaction.atomic
def upload_attachment(actor, patient: Patient, upload, *, order: Optional[DiagnosticOrder] = None,
                      group_order: Optional[GroupOrder] = None, test_name: str = '',
                      test_type: Optional[str] = None) -> LabAttachment:
    if order is None and group_order is None:
        raise ValidationError({'orderId': 'attach the file to an order or a group order'})
    for linked in (order, group_order):
        if linked is not None and linked.patient_id != patient.id:
            raise ValidationError({'orderId': 'order belongs to another patient'})
    content_type = validate_upload(upload)
    test_type = test_type or (order.service_type if order else None)
    if not test_type:
        raise ValidationError({'testType': 'test type is required for group order attachments'})
    attachment = LabAttachment(
        patient=patient,
        order=order,
        group_order=group_order,
        test_name=bleach.clean((test_name or (order.test.name if order else '')).strip(), strip=True),
        test_type=test_type,
        file_name=bleach.clean(upload.name or 'file', strip=True)[:255],
        content_type=content_type,
        size=upload.size or 0,
        uploaded_by=actor if getattr(actor, 'is_authenticated', False) else None,
    )
    attachment.file.save(upload.name or 'file', upload, save=False)
    attachment.save()
    log_action(user=actor, action='attachment_upload', object_type='patient', object_id=patient.uhid,
               detail={'attachment': attachment.id, 'file': attachment.file_name})
    return attachment


def get_attachment(attachment_id) -> LabAttachment:
    attachment = LabAttachment.objects.select_related('patient', 'uploaded_by').filter(id=attachment_id).first()
    if not attachment:
        raise NotFound('attachment not found')
    return attachment


def list_attachments(*, patient=None, order=None, group_order=None, test_type: Optional[str] = None) -> list[LabAttachment]:
    qs = LabAttachment.objects.select_related('patient', 'uploaded_by')
    if patient is not None:
        qs = qs.filter(patient=patient)
    if order is not None:
        qs = qs.filter(order=order)
    if group_order is not None:
        qs = qs.filter(group_order=group_order)
    if test_type:
        qs = qs.filter(test_type=test_type)
    return list(qs.order_by('-uploaded_at', '-id'))


def update_attachment(actor, attachment: LabAttachment, test_name: str) -> LabAttachment:
    attachment.test_name = bleach.clean((test_name or '').strip(), strip=True)
    attachment.save(update_fields=['test_name'])
    log_action(user=actor, action='attachment_update', object_type='patient', object_id=attachment.patient.uhid,
               detail={'attachment': attachment.id})
    return attachment


def remove_stored_file(storage, name: str) -> None:
    if not name:
        return
    try:
        storage.delete(name)
    except OSError:
        logger.exception('failed to remove stored file %s', name)


def delete_attachment(actor, attachment: LabAttachment) -> None:
    uhid, attachment_id = attachment.patient.uhid, attachment.id
    storage, name = attachment.file.storage, attachment.file.name
    attachment.delete()
    remove_stored_file(storage, name)
    log_action(user=actor, action='attachment_delete', object_type='patient', object_id=uhid,
               detail={'attachment': attachment_id})


def attachment_to_dict(a: LabAttachment, request=None) -> dict:
    url = a.file.url if a.file else None
    if url and request is not None:
        url = request.build_absolute_uri(url)
    return {
        'id': a.id,
        'patientId': a.patient_id,
        'uhid': a.patient.uhid,
        'orderId': a.order_id,
        'groupOrderId': a.group_order_id,
        'testName': a.test_name,
        'testType': a.test_type,
        'fileName': a.file_name,
        'contentType': a.content_type,
        'size': a.size,
        'url': url,
        'uploadedBy': a.uploaded_by.username if a.uploaded_by else None,
        'uploadedAt': a.uploaded_at.isoformat() if a.uploaded_at else None,
    }
