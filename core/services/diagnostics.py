"""
Lab, radiology, scan and X-ray ordering.

Every order is priced from the catalog and gets a pending
``BillingItem`` in the same transaction.  Status changes follow a small
graph; only lab orders pass through ``sample_collected``.  Group orders
bundle several orders created together and derive their status from
them.
"""
from __future__ import annotations

import logging
import re
from datetime import date
from typing import Iterable, Optional

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from core.exceptions import InvalidTransition
from core.models import (
    BillingItem, DiagnosticGroup, DiagnosticGroupItem, DiagnosticOrder, DiagnosticTest,
    GroupOrder, LabResult, Patient,
)
from core.services.attachments import remove_stored_file
from core.services.audit import log_action
from core.services.events import publish

logger = logging.getLogger(__name__)

ORDER_PREFIXES = {'lab': 'LAB', 'radiology': 'RAD', 'scan': 'SCN', 'xray': 'XRY'}
PENDING_STATUSES = ('ordered', 'sample_collected', 'in_progress')
NUMBER_ATTEMPTS = 3
EDITABLE_ORDER_FIELDS = (
    'clinical_indication', 'provisional_diagnosis', 'special_instructions', 'body_part',
    'urgency', 'preferred_date', 'preferred_time', 'ordering_doctor',
)
TEST_FIELDS = (
    'service_type', 'code', 'name', 'category', 'sample_type', 'modality', 'body_part',
    'fasting_required', 'contrast_required', 'turnaround_hours', 'cost', 'is_active',
)


def _can_transition(service_type: str, current: str, new: str) -> bool:
    transitions = {
        'ordered': ['sample_collected', 'in_progress', 'cancelled'],
        'sample_collected': ['in_progress', 'completed', 'cancelled'],
        'in_progress': ['completed', 'cancelled'],
        'completed': [],
        'cancelled': [],
    }
    if new == 'sample_collected' and service_type != 'lab':
        return False
    return new in transitions.get(current, [])


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

def list_tests(*, service_type: Optional[str] = None, category: Optional[str] = None,
               search: Optional[str] = None, include_inactive: bool = False) -> list[DiagnosticTest]:
    qs = DiagnosticTest.objects.all()
    if service_type:
        qs = qs.filter(service_type=service_type)
    if category:
        qs = qs.filter(category__iexact=category)
    if search:
        qs = qs.filter(Q(name__icontains=search) | Q(code__icontains=search))
    if not include_inactive:
        qs = qs.filter(is_active=True)
    return list(qs.order_by('service_type', 'category', 'name'))


def get_test(test_id) -> DiagnosticTest:
    test = DiagnosticTest.objects.filter(id=test_id).first()
    if not test:
        raise NotFound('test not found')
    return test


def _check_code(service_type: str, code: str, exclude_id=None) -> None:
    qs = DiagnosticTest.objects.filter(service_type=service_type, code__iexact=code)
    if exclude_id:
        qs = qs.exclude(id=exclude_id)
    if qs.exists():
        raise ValidationError({'code': f'{code} already exists in the {service_type} catalog'})


def create_test(actor, data: dict) -> DiagnosticTest:
    service_type = data['service_type']
    code = (data.get('code') or '').strip().upper()
    if not code:
        last = DiagnosticTest.objects.filter(service_type=service_type).count()
        code = f"{ORDER_PREFIXES[service_type]}{last + 1:03d}"
    _check_code(service_type, code)
    test = DiagnosticTest(code=code)
    for field in TEST_FIELDS:
        if field != 'code' and data.get(field) is not None:
            setattr(test, field, data[field])
    test.save()
    log_action(user=actor, action='test_create', object_type='diagnostic_test', object_id=test.id,
               detail={'code': test.code, 'type': service_type})
    return test


def update_test(actor, test: DiagnosticTest, data: dict) -> DiagnosticTest:
    if 'code' in data or 'service_type' in data:
        code = (data.get('code') or test.code).strip().upper()
        _check_code(data.get('service_type', test.service_type), code, exclude_id=test.id)
        data = {**data, 'code': code}
    for field in TEST_FIELDS:
        if field in data:
            setattr(test, field, data[field])
    test.save()
    log_action(user=actor, action='test_update', object_type='diagnostic_test', object_id=test.id,
               detail={'fields': sorted(data.keys())})
    return test


def list_categories(service_type: Optional[str] = None) -> list[str]:
    qs = DiagnosticTest.objects.filter(is_active=True).exclude(category='')
    if service_type:
        qs = qs.filter(service_type=service_type)
    return list(qs.order_by('category').values_list('category', flat=True).distinct())


def test_to_dict(t: DiagnosticTest) -> dict:
    return {
        'id': t.id,
        'serviceType': t.service_type,
        'code': t.code,
        'name': t.name,
        'category': t.category,
        'sampleType': t.sample_type,
        'modality': t.modality,
        'bodyPart': t.body_part,
        'fastingRequired': t.fasting_required,
        'contrastRequired': t.contrast_required,
        'turnaroundHours': t.turnaround_hours,
        'cost': str(t.cost),
        'isActive': t.is_active,
    }


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

def generate_order_number(service_type: str, now=None) -> str:
    """``{PREFIX}-{YYYYMMDD}-{NNNN}`` numbered per type and day."""
    now = now or timezone.localtime()
    prefix = f"{ORDER_PREFIXES[service_type]}-{now:%Y%m%d}-"
    last = (
        DiagnosticOrder.objects.filter(order_number__startswith=prefix)
        .order_by('-order_number')
        .values_list('order_number', flat=True)
        .first()
    )
    seq = int(last[len(prefix):]) + 1 if last else 1
    return f"{prefix}{seq:04d}"


def create_order(actor, patient: Patient, test: DiagnosticTest, *, appointment=None, ordering_doctor=None,
                 group_order: Optional[GroupOrder] = None, sort_order: int = 0, **details) -> DiagnosticOrder:
    if not test.is_active:
        raise ValidationError({'testId': f'{test.name} is not currently offered'})
    if appointment is not None and appointment.patient_id != patient.id:
        raise ValidationError({'appointmentId': 'appointment belongs to another patient'})
    actor = actor if getattr(actor, 'is_authenticated', False) else None
    with transaction.atomic():
        order = DiagnosticOrder(
            service_type=test.service_type,
            patient=patient,
            appointment=appointment,
            ordering_doctor=ordering_doctor or (appointment.doctor if appointment else None),
            test=test,
            group_order=group_order,
            item_name_snapshot=test.name,
            sort_order=sort_order,
            body_part=details.get('body_part') or test.body_part,
            amount=test.cost,
            created_by=actor,
        )
        for field in ('clinical_indication', 'provisional_diagnosis', 'special_instructions',
                      'urgency', 'preferred_date', 'preferred_time'):
            if details.get(field) not in (None, ''):
                setattr(order, field, details[field])
        for attempt in range(NUMBER_ATTEMPTS):
            order.order_number = generate_order_number(test.service_type)
            try:
                with transaction.atomic():
                    order.save()
                break
            except IntegrityError:
                # another order took the same number
                logger.warning('order number collision on %s (attempt %d)', order.order_number, attempt + 1)
        else:
            raise ValidationError({'orderNumber': 'could not allocate an order number, try again'})
        BillingItem.objects.create(
            order=order, patient=patient, order_type=order.service_type,
            test_name=test.name, amount=test.cost, status='pending',
        )
    publish('diagnostics', action='ordered', orderNumber=order.order_number, serviceType=order.service_type)
    log_action(user=actor, action='order_create', object_type='diagnostic_order', object_id=order.order_number,
               detail={'patient': patient.uhid, 'test': test.code})
    return order


def get_order(order_id) -> DiagnosticOrder:
    qs = DiagnosticOrder.objects.select_related('patient', 'test', 'ordering_doctor__user', 'billing_item')
    lookup = Q(order_number=order_id)
    if str(order_id).isdigit():
        lookup |= Q(id=int(order_id))
    order = qs.filter(lookup).first()
    if not order:
        raise NotFound('order not found')
    return order


def list_orders(*, service_type: Optional[str] = None, status: Optional[str] = None, patient=None,
                date_from: Optional[date] = None, date_to: Optional[date] = None,
                search: Optional[str] = None, urgency: Optional[str] = None,
                page: Optional[int] = None, page_size: Optional[int] = None) -> tuple[list[DiagnosticOrder], int]:
    qs = DiagnosticOrder.objects.select_related('patient', 'test', 'ordering_doctor__user', 'billing_item')
    if service_type:
        qs = qs.filter(service_type=service_type)
    if status:
        qs = qs.filter(status=status)
    if patient is not None:
        qs = qs.filter(patient=patient)
    if urgency:
        qs = qs.filter(urgency=urgency)
    if date_from:
        qs = qs.filter(created_at__date__gte=date_from)
    if date_to:
        qs = qs.filter(created_at__date__lte=date_to)
    if search:
        qs = qs.filter(
            Q(order_number__icontains=search) | Q(patient__uhid__icontains=search)
            | Q(patient__first_name__icontains=search) | Q(patient__last_name__icontains=search)
            | Q(test__name__icontains=search)
        )
    total = qs.count()
    qs = qs.order_by('-created_at', '-id')
    if page and page_size:
        start = (page-1)*page_size
        qs = qs[start:start + page_size]
    return list(qs), total


def patient_orders(patient: Patient, service_type: Optional[str] = None) -> list[DiagnosticOrder]:
    orders, _ = list_orders(patient=patient, service_type=service_type)
    return orders


def update_order(actor, order: DiagnosticOrder, data: dict) -> DiagnosticOrder:
    if order.status in ('completed', 'cancelled'):
        raise ValidationError({'status': f'{order.status} orders cannot be edited'})
    changed = [f for f in EDITABLE_ORDER_FIELDS if f in data]
    for field in changed:
        setattr(order, field, data[field])
    if changed:
        order.save()
        log_action(user=actor, action='order_update', object_type='diagnostic_order',
                   object_id=order.order_number, detail={'fields': changed})
    return order


def delete_order(actor, order: DiagnosticOrder) -> None:
    if order.status != 'ordered':
        raise ValidationError({'status': 'only orders that have not started can be deleted'})
    item = BillingItem.objects.filter(order=order).first()
    if item and item.status != 'pending':
        raise ValidationError({'billing': 'order has already been billed'})
    number = order.order_number
    stored = [(a.file.storage, a.file.name) for a in order.attachments.all()]
    order.delete()
    for storage, name in stored:
        remove_stored_file(storage, name)
    publish('diagnostics', action='deleted', orderNumber=number)
    log_action(user=actor, action='order_delete', object_type='diagnostic_order', object_id=number)


def _sample_id(order: DiagnosticOrder) -> str:
    return f"SMP{timezone.localtime():%y%m%d}{order.id:05d}"


def update_order_status(actor, order: DiagnosticOrder, new_status: str, *, sample_id: str = '',
                        collected_by: str = '') -> DiagnosticOrder:
    with transaction.atomic():
        locked = DiagnosticOrder.objects.select_for_update().get(id=order.id)
        if not _can_transition(locked.service_type, locked.status, new_status):
            raise InvalidTransition(locked.status, new_status)
        old_status = locked.status
        now = timezone.now()
        locked.status = new_status
        if new_status == 'sample_collected':
            locked.sample_id = sample_id or _sample_id(locked)
            locked.sample_collected_at = now
            locked.sample_collected_by = collected_by or (actor.get_full_name() or actor.username if actor else '')
        if new_status == 'completed':
            locked.completed_at = now
        locked.save()
        if new_status == 'cancelled':
            voided = BillingItem.objects.filter(order=locked, status='pending').update(status='void')
            if voided:
                logger.info('voided billing item for cancelled order %s', locked.order_number)
    publish('diagnostics', action='status', orderNumber=locked.order_number, status=new_status)
    log_action(user=actor, action='order_status', object_type='diagnostic_order', object_id=locked.order_number,
               detail={'from': old_status, 'to': new_status})
    return get_order(locked.id)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

_RANGE = re.compile(r'^\s*(-?\d+(?:\.\d+)?)\s*[-–]\s*(-?\d+(?:\.\d+)?)\s*$')
_BOUND = re.compile(r'^\s*([<>]=?)\s*(-?\d+(?:\.\d+)?)\s*$')


def is_abnormal(value: str, reference_range: str) -> bool:
    """Compare a numeric value with ``"low-high"``, ``"<x"`` or ``">x"``.

    Non-numeric values or ranges are never flagged.
    """
    try:
        number = float(str(value).strip())
    except ValueError:
        return False
    ref = reference_range or ''
    match = _RANGE.match(ref)
    if match:
        low, high = float(match.group(1)), float(match.group(2))
        return not (low <= number <= high)
    match = _BOUND.match(ref)
    if match:
        op, bound = match.group(1), float(match.group(2))
        within = {
            '<': number < bound, '<=': number <= bound,
            '>': number > bound, '>=': number >= bound,
        }[op]
        return not within
    return False


def _result_fields(result: LabResult, data: dict, recompute: bool = True) -> None:
    """Copy ``data`` onto ``result``.

    An explicit ``is_abnormal`` wins.  Otherwise the flag is derived from
    value and range, on updates only when one of those two changed.
    """
    for field in ('parameter_name', 'value', 'unit', 'reference_range', 'notes'):
        if field in data and data[field] is not None:
            setattr(result, field, str(data[field]))
    if data.get('is_abnormal') is not None:
        result.is_abnormal = bool(data['is_abnormal'])
    elif recompute or any(data.get(f) is not None for f in ('value', 'reference_range')):
        result.is_abnormal = is_abnormal(result.value, result.reference_range)


def add_lab_results(actor, order: DiagnosticOrder, results: Iterable[dict]) -> list[LabResult]:
    """Store results and mark the order completed."""
    results = list(results)
    if not results:
        raise ValidationError({'results': 'at least one result is required'})
    actor = actor if getattr(actor, 'is_authenticated', False) else None
    with transaction.atomic():
        locked = DiagnosticOrder.objects.select_for_update().get(id=order.id)
        if locked.status == 'cancelled':
            raise ValidationError({'status': 'cannot record results for a cancelled order'})
        created = []
        for data in results:
            result = LabResult(order=locked, entered_by=actor)
            _result_fields(result, data)
            if not result.parameter_name or result.value == '':
                raise ValidationError({'results': 'each result needs a parameter name and a value'})
            result.save()
            created.append(result)
        if locked.status != 'completed':
            locked.status = 'completed'
            locked.completed_at = timezone.now()
            locked.save(update_fields=['status', 'completed_at', 'updated_at'])
    publish('diagnostics', action='results', orderNumber=locked.order_number)
    log_action(user=actor, action='results_add', object_type='diagnostic_order', object_id=locked.order_number,
               detail={'count': len(created), 'abnormal': sum(r.is_abnormal for r in created)})
    return created


def order_results(order: DiagnosticOrder) -> list[LabResult]:
    return list(order.results.order_by('id'))


def get_result(result_id) -> LabResult:
    result = LabResult.objects.select_related('order').filter(id=result_id).first()
    if not result:
        raise NotFound('result not found')
    return result


def update_result(actor, result: LabResult, data: dict) -> LabResult:
    _result_fields(result, data, recompute=False)
    result.save()
    log_action(user=actor, action='result_update', object_type='diagnostic_order',
               object_id=result.order.order_number, detail={'result': result.id})
    return result


def delete_result(actor, result: LabResult) -> None:
    number, result_id = result.order.order_number, result.id
    result.delete()
    log_action(user=actor, action='result_delete', object_type='diagnostic_order', object_id=number,
               detail={'result': result_id})


def result_to_dict(r: LabResult) -> dict:
    return {
        'id': r.id,
        'orderId': r.order_id,
        'parameterName': r.parameter_name,
        'value': r.value,
        'unit': r.unit,
        'referenceRange': r.reference_range,
        'isAbnormal': r.is_abnormal,
        'notes': r.notes,
        'createdAt': r.created_at.isoformat() if r.created_at else None,
    }


# ---------------------------------------------------------------------------
# Diagnostic groups
# ---------------------------------------------------------------------------

def _refresh_service_types(group: DiagnosticGroup) -> None:
    types = sorted(set(group.items.values_list('test__service_type', flat=True)))
    if types != group.service_types:
        group.service_types = types
        group.save(update_fields=['service_types', 'updated_at'])


def list_groups(include_inactive: bool = False, service_type: Optional[str] = None) -> list[DiagnosticGroup]:
    qs = DiagnosticGroup.objects.prefetch_related('items__test')
    if not include_inactive:
        qs = qs.filter(is_active=True)
    groups = list(qs.order_by('name'))
    if service_type:
        groups = [g for g in groups if service_type in (g.service_types or [])]
    return groups


def get_group(group_id) -> DiagnosticGroup:
    group = DiagnosticGroup.objects.prefetch_related('items__test').filter(id=group_id).first()
    if not group:
        raise NotFound('group not found')
    return group


def add_group_item(group: DiagnosticGroup, test: DiagnosticTest, default_selected: bool = True,
                   sort_order: Optional[int] = None) -> DiagnosticGroupItem:
    if group.items.filter(test=test).exists():
        raise ValidationError({'testId': f'{test.name} is already in {group.name}'})
    if sort_order is None:
        sort_order = group.items.count()
    item = DiagnosticGroupItem.objects.create(group=group, test=test, default_selected=default_selected,
                                              sort_order=sort_order)
    _refresh_service_types(group)
    return item


def create_group(actor, data: dict) -> DiagnosticGroup:
    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationError({'name': 'group name is required'})
    with transaction.atomic():
        group = DiagnosticGroup.objects.create(
            name=name, category=data.get('category') or '',
            is_active=data.get('is_active', True),
            created_by=actor if getattr(actor, 'is_authenticated', False) else None,
        )
        for index, item in enumerate(data.get('items') or []):
            add_group_item(group, get_test(item['test_id']), item.get('default_selected', True),
                           item.get('sort_order', index))
    log_action(user=actor, action='group_create', object_type='diagnostic_group', object_id=group.id)
    return get_group(group.id)


def update_group(actor, group: DiagnosticGroup, data: dict) -> DiagnosticGroup:
    for field in ('name', 'category', 'is_active'):
        if field in data:
            setattr(group, field, data[field])
    group.save()
    log_action(user=actor, action='group_update', object_type='diagnostic_group', object_id=group.id)
    return get_group(group.id)


def delete_group(actor, group: DiagnosticGroup) -> None:
    group_id = group.id
    group.delete()
    log_action(user=actor, action='group_delete', object_type='diagnostic_group', object_id=group_id)


def get_group_item(item_id) -> DiagnosticGroupItem:
    item = DiagnosticGroupItem.objects.select_related('group', 'test').filter(id=item_id).first()
    if not item:
        raise NotFound('group item not found')
    return item


def update_group_item(item: DiagnosticGroupItem, data: dict) -> DiagnosticGroupItem:
    for field in ('default_selected', 'sort_order'):
        if field in data:
            setattr(item, field, data[field])
    item.save()
    return item


def delete_group_item(item: DiagnosticGroupItem) -> None:
    group = item.group
    item.delete()
    _refresh_service_types(group)


def group_to_dict(g: DiagnosticGroup) -> dict:
    return {
        'id': g.id,
        'name': g.name,
        'category': g.category,
        'serviceTypes': g.service_types,
        'isActive': g.is_active,
        'items': [
            {
                'id': i.id,
                'testId': i.test_id,
                'testName': i.test.name,
                'serviceType': i.test.service_type,
                'cost': str(i.test.cost),
                'defaultSelected': i.default_selected,
                'sortOrder': i.sort_order,
            }
            for i in g.items.all()
        ],
    }


# ---------------------------------------------------------------------------
# Group orders
# ---------------------------------------------------------------------------

def create_group_order(actor, patient: Patient, *, group: Optional[DiagnosticGroup] = None,
                       test_ids: Optional[list] = None, appointment=None, ordering_doctor=None,
                       clinical_indication: str = '', urgency: str = 'routine') -> GroupOrder:
    """One order per selected test, all or nothing.

    Without ``test_ids`` the group's default selection is used.
    """
    if test_ids is None:
        if group is None:
            raise ValidationError({'items': 'choose a diagnostic group or at least one test'})
        test_ids = [i.test_id for i in group.items.all() if i.default_selected]
    if not test_ids:
        raise ValidationError({'items': 'no tests selected'})
    tests = {t.id: t for t in DiagnosticTest.objects.filter(id__in=test_ids)}
    missing = [tid for tid in test_ids if tid not in tests]
    if missing:
        raise ValidationError({'items': f'unknown tests: {missing}'})

    with transaction.atomic():
        group_order = GroupOrder.objects.create(
            patient=patient,
            group=group,
            group_name_snapshot=group.name if group else 'Custom order',
            appointment=appointment,
            ordering_doctor=ordering_doctor,
            clinical_indication=clinical_indication or '',
            urgency=urgency or 'routine',
            created_by=actor if getattr(actor, 'is_authenticated', False) else None,
        )
        for index, test_id in enumerate(test_ids):
            create_order(actor, patient, tests[test_id], appointment=appointment, ordering_doctor=ordering_doctor,
                         group_order=group_order, sort_order=index,
                         clinical_indication=clinical_indication, urgency=urgency)
    log_action(user=actor, action='group_order_create', object_type='group_order', object_id=group_order.id,
               detail={'patient': patient.uhid, 'tests': len(test_ids)})
    return group_order


def get_group_order(group_order_id) -> GroupOrder:
    group_order = (
        GroupOrder.objects.select_related('patient', 'group', 'ordering_doctor__user')
        .filter(id=group_order_id)
        .first()
    )
    if not group_order:
        raise NotFound('group order not found')
    return group_order


def patient_group_orders(patient: Patient) -> list[GroupOrder]:
    return list(
        GroupOrder.objects.select_related('patient', 'group', 'ordering_doctor__user')
        .filter(patient=patient)
        .order_by('-created_at', '-id')
    )


def group_order_status(statuses: list[str]) -> str:
    """Overall status of a bundle from the statuses of its orders."""
    if not statuses or all(s == 'cancelled' for s in statuses):
        return 'cancelled'
    live = [s for s in statuses if s != 'cancelled']
    if all(s == 'completed' for s in live):
        return 'completed'
    if all(s == 'ordered' for s in live):
        return 'ordered'
    return 'in_progress'


def group_order_to_dict(g: GroupOrder) -> dict:
    orders = list(g.orders.select_related('patient', 'test', 'ordering_doctor__user', 'billing_item')
                  .order_by('sort_order', 'id'))
    return {
        'id': g.id,
        'patientId': g.patient_id,
        'uhid': g.patient.uhid,
        'groupId': g.group_id,
        'groupName': g.group_name_snapshot,
        'appointmentId': g.appointment_id,
        'orderingDoctor': g.ordering_doctor.name if g.ordering_doctor else None,
        'clinicalIndication': g.clinical_indication,
        'urgency': g.urgency,
        'status': group_order_status([o.status for o in orders]),
        'totalAmount': str(sum((o.amount for o in orders if o.status != 'cancelled'), 0)),
        'orders': [order_to_dict(o) for o in orders],
        'createdAt': g.created_at.isoformat() if g.created_at else None,
    }


def diagnostic_stats(today: Optional[date] = None) -> dict:
    today = today or timezone.localdate()
    data = {'totalOrders': DiagnosticOrder.objects.count(), 'byType': {}}
    for service_type in ORDER_PREFIXES:
        qs = DiagnosticOrder.objects.filter(service_type=service_type)
        data['byType'][service_type] = {
            'total': qs.count(),
            'pending': qs.filter(status__in=PENDING_STATUSES).count(),
        }
    data['pendingOrders'] = sum(v['pending'] for v in data['byType'].values())
    data['completedToday'] = DiagnosticOrder.objects.filter(status='completed', completed_at__date=today).count()
    return data


def order_to_dict(o: DiagnosticOrder) -> dict:
    billing = getattr(o, 'billing_item', None)
    return {
        'id': o.id,
        'orderNumber': o.order_number,
        'serviceType': o.service_type,
        'patientId': o.patient_id,
        'uhid': o.patient.uhid,
        'patientName': o.patient.full_name,
        'appointmentId': o.appointment_id,
        'orderingDoctorId': o.ordering_doctor_id,
        'orderingDoctor': o.ordering_doctor.name if o.ordering_doctor else None,
        'testId': o.test_id,
        'testName': o.item_name_snapshot or o.test.name,
        'testCode': o.test.code,
        'groupOrderId': o.group_order_id,
        'clinicalIndication': o.clinical_indication,
        'provisionalDiagnosis': o.provisional_diagnosis,
        'specialInstructions': o.special_instructions,
        'bodyPart': o.body_part,
        'urgency': o.urgency,
        'status': o.status,
        'preferredDate': o.preferred_date.isoformat() if o.preferred_date else None,
        'preferredTime': o.preferred_time.strftime('%H:%M') if o.preferred_time else None,
        'amount': str(o.amount),
        'billingStatus': billing.status if billing else None,
        'sampleId': o.sample_id,
        'sampleCollectedAt': o.sample_collected_at.isoformat() if o.sample_collected_at else None,
        'sampleCollectedBy': o.sample_collected_by,
        'completedAt': o.completed_at.isoformat() if o.completed_at else None,
        'createdAt': o.created_at.isoformat() if o.created_at else None,
    }
