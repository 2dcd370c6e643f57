"""
Diagnostic billing.

Orders create pending ``BillingItem`` rows.  The cashier either settles
items one by one (``update_billing_status``) or groups a patient's
pending items into a ``DiagnosticBill`` which is then paid as a whole.
"""
from __future__ import annotations

import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from django.db import IntegrityError, transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from core.exceptions import InvalidTransition
from core.models import BillingItem, DiagnosticBill, Patient
from core.services.audit import log_action
from core.services.events import publish

logger = logging.getLogger(__name__)

DEFAULT_BILL_PREFIX = 'DB'
NUMBER_ATTEMPTS = 3
CENT = Decimal('0.01')


def _can_transition(current: str, new: str) -> bool:
    transitions = {
        'pending': ['billed', 'paid'],
        'billed': ['paid'],
        'paid': [],
        'void': [],
    }
    return new in transitions.get(current, [])


def list_billing_items(*, status: Optional[str] = None, order_type: Optional[str] = None, patient=None,
                       date_from: Optional[date] = None, date_to: Optional[date] = None,
                       search: Optional[str] = None, page: Optional[int] = None,
                       page_size: Optional[int] = None) -> tuple[list[BillingItem], int]:
    qs = BillingItem.objects.select_related('patient', 'order', 'bill')
    if status:
        qs = qs.filter(status=status)
    if order_type:
        qs = qs.filter(order_type=order_type)
    if patient is not None:
        qs = qs.filter(patient=patient)
    if date_from:
        qs = qs.filter(created_at__date__gte=date_from)
    if date_to:
        qs = qs.filter(created_at__date__lte=date_to)
    if search:
        qs = qs.filter(
            Q(test_name__icontains=search) | Q(order__order_number__icontains=search)
            | Q(patient__uhid__icontains=search) | Q(patient__first_name__icontains=search)
            | Q(patient__last_name__icontains=search)
        )
    total = qs.count()
    qs = qs.order_by('-created_at', '-id')
    if page and page_size:
        start = (page-1)*page_size
        qs = qs[start:start + page_size]
    return list(qs), total


def get_billing_item(item_id) -> BillingItem:
    item = BillingItem.objects.select_related('patient', 'order', 'bill').filter(id=item_id).first()
    if not item:
        raise NotFound('billing item not found')
    return item


def update_billing_status(actor, item: BillingItem, new_status: str, payment_method: str = '') -> BillingItem:
    with transaction.atomic():
        locked = BillingItem.objects.select_for_update().get(id=item.id)
        if not _can_transition(locked.status, new_status):
            raise InvalidTransition(locked.status, new_status)
        old_status = locked.status
        now = timezone.now()
        locked.status = new_status
        if new_status == 'billed':
            locked.billed_at = now
        if new_status == 'paid':
            locked.billed_at = locked.billed_at or now
            locked.paid_at = now
            locked.payment_method = payment_method or locked.payment_method
            locked.paid_amount = locked.amount
        locked.save()
    publish('billing', action='status', itemId=locked.id, status=new_status)
    log_action(user=actor, action='billing_status', object_type='billing_item', object_id=locked.id,
               detail={'from': old_status, 'to': new_status})
    return get_billing_item(locked.id)


def generate_bill_number(prefix: str = DEFAULT_BILL_PREFIX, now=None) -> str:
    """``{PREFIX}-{YYMM}-{NNNN}``, sequential within the month."""
    now = now or timezone.localtime()
    head = f"{prefix.upper()}-{now:%y%m}-"
    last = (
        DiagnosticBill.objects.filter(bill_number__startswith=head)
        .order_by('-bill_number')
        .values_list('bill_number', flat=True)
        .first()
    )
    seq = int(last[len(head):]) + 1 if last else 1
    return f"{head}{seq:04d}"


def create_bill(actor, patient: Patient, item_ids: list, *, discount=0, tax=0,
                bill_type: str = 'diagnostic', prefix: str = DEFAULT_BILL_PREFIX) -> DiagnosticBill:
    if not item_ids:
        raise ValidationError({'itemIds': 'select at least one billing item'})
    discount, tax = Decimal(str(discount or 0)), Decimal(str(tax or 0))
    if discount < 0 or tax < 0:
        raise ValidationError({'discount': 'discount and tax cannot be negative'})
    with transaction.atomic():
        items = list(BillingItem.objects.select_for_update().filter(id__in=item_ids))
        if len(items) != len(set(item_ids)):
            raise ValidationError({'itemIds': 'unknown billing items'})
        if any(i.patient_id != patient.id for i in items):
            raise ValidationError({'itemIds': 'items belong to another patient'})
        not_pending = [i.id for i in items if i.status != 'pending']
        if not_pending:
            raise ValidationError({'itemIds': f'items already billed or void: {not_pending}'})
        subtotal = sum((i.amount for i in items), Decimal('0'))
        if discount > subtotal:
            raise ValidationError({'discount': 'discount exceeds the bill subtotal'})
        now = timezone.now()
        bill = DiagnosticBill(
            bill_type=bill_type,
            patient=patient,
            subtotal=subtotal,
            discount=discount,
            tax=tax,
            total=subtotal - discount + tax,
            issued_at=now,
            created_by=actor if getattr(actor, 'is_authenticated', False) else None,
        )
        for attempt in range(NUMBER_ATTEMPTS):
            bill.bill_number = generate_bill_number(prefix)
            try:
                with transaction.atomic():
                    bill.save()
                break
            except IntegrityError:
                # another bill took the same number
                logger.warning('bill number collision on %s (attempt %d)', bill.bill_number, attempt + 1)
        else:
            raise ValidationError({'billNumber': 'could not allocate a bill number, try again'})
        BillingItem.objects.filter(id__in=[i.id for i in items]).update(status='billed', bill=bill, billed_at=now)
    publish('billing', action='bill', billNumber=bill.bill_number)
    log_action(user=actor, action='bill_create', object_type='bill', object_id=bill.bill_number,
               detail={'patient': patient.uhid, 'items': len(items), 'total': str(bill.total)})
    return bill


def _spread(items: list, amount: Decimal, subtotal: Decimal) -> None:
    """Share ``amount`` across ``items`` in proportion to their price; the last takes the rounding."""
    remaining = amount
    for i, item in enumerate(items):
        if i == len(items) - 1:
            share = remaining
        elif subtotal:
            share = (amount * item.amount / subtotal).quantize(CENT, rounding=ROUND_HALF_UP)
        else:
            share = Decimal('0')
        item.paid_amount += share
        remaining -= share


def record_payment(actor, bill: DiagnosticBill, payment_method: str, amount=None,
                   reference: str = '') -> DiagnosticBill:
    """Take a payment against ``bill``.

    ``amount`` defaults to the outstanding balance and may not exceed it.
    The bill is ``partial`` until fully settled, after which its items
    are marked paid.
    """
    if not payment_method:
        raise ValidationError({'paymentMethod': 'payment method is required'})
    with transaction.atomic():
        locked = DiagnosticBill.objects.select_for_update().get(id=bill.id)
        if locked.payment_status == 'paid':
            raise ValidationError({'paymentStatus': 'bill is already paid'})
        balance = locked.total - locked.paid_amount
        amount = balance if amount is None else Decimal(str(amount)).quantize(CENT)
        if amount < 0 or (amount == 0 and balance > 0):
            raise ValidationError({'amount': 'payment amount must be positive'})
        if amount > balance:
            raise ValidationError({'amount': f'payment exceeds the outstanding balance of {balance}'})

        now = timezone.now()
        locked.paid_amount += amount
        locked.payment_status = 'paid' if locked.paid_amount >= locked.total else 'partial'
        locked.payment_method = payment_method
        locked.payment_reference = (reference or '')[:64]
        if locked.payment_status == 'paid':
            locked.paid_at = now
        locked.save()

        items = list(locked.items.select_for_update().exclude(status='void').order_by('id'))
        _spread(items, amount, sum((i.amount for i in items), Decimal('0')))
        for item in items:
            item.payment_method = payment_method
            if locked.payment_status == 'paid':
                item.status, item.paid_at = 'paid', now
            item.save(update_fields=['paid_amount', 'payment_method', 'status', 'paid_at'])
    publish('billing', action=locked.payment_status, billNumber=locked.bill_number)
    log_action(user=actor, action='bill_payment', object_type='bill', object_id=locked.bill_number,
               detail={'method': payment_method, 'amount': str(amount), 'reference': locked.payment_reference,
                       'status': locked.payment_status})
    return locked


def list_bills(*, patient=None, payment_status: Optional[str] = None, date_from: Optional[date] = None,
               date_to: Optional[date] = None, page: Optional[int] = None,
               page_size: Optional[int] = None) -> tuple[list[DiagnosticBill], int]:
    qs = DiagnosticBill.objects.select_related('patient')
    if patient is not None:
        qs = qs.filter(patient=patient)
    if payment_status:
        qs = qs.filter(payment_status=payment_status)
    if date_from:
        qs = qs.filter(issued_at__date__gte=date_from)
    if date_to:
        qs = qs.filter(issued_at__date__lte=date_to)
    total = qs.count()
    qs = qs.order_by('-issued_at', '-id')
    if page and page_size:
        start = (page-1)*page_size
        qs = qs[start:start + page_size]
    return list(qs), total


def get_bill(bill_number: str) -> DiagnosticBill:
    bill = DiagnosticBill.objects.select_related('patient').filter(bill_number=bill_number).first()
    if not bill:
        raise NotFound('bill not found')
    return bill


def billing_stats(today: Optional[date] = None) -> dict:
    today = today or timezone.localdate()

    def _sum(qs) -> str:
        return str(qs.aggregate(s=Sum('amount'))['s'] or Decimal('0'))

    items = BillingItem.objects.all()
    by_status = {row['status']: row['n'] for row in items.values('status').annotate(n=Count('id'))}
    return {
        'pendingCount': by_status.get('pending', 0),
        'billedCount': by_status.get('billed', 0),
        'paidCount': by_status.get('paid', 0),
        'voidCount': by_status.get('void', 0),
        'pendingAmount': _sum(items.filter(status='pending')),
        'billedAmount': _sum(items.filter(status='billed')),
        'paidAmount': _sum(items.filter(status='paid')),
        'paidToday': _sum(items.filter(status='paid', paid_at__date=today)),
        'unpaidBills': DiagnosticBill.objects.exclude(payment_status='paid').count(),
    }


def billing_item_to_dict(i: BillingItem) -> dict:
    return {
        'id': i.id,
        'orderId': i.order_id,
        'orderNumber': i.order.order_number,
        'patientId': i.patient_id,
        'uhid': i.patient.uhid,
        'patientName': i.patient.full_name,
        'orderType': i.order_type,
        'testName': i.test_name,
        'amount': str(i.amount),
        'paidAmount': str(i.paid_amount),
        'status': i.status,
        'billNumber': i.bill.bill_number if i.bill else None,
        'paymentMethod': i.payment_method,
        'billedAt': i.billed_at.isoformat() if i.billed_at else None,
        'paidAt': i.paid_at.isoformat() if i.paid_at else None,
        'createdAt': i.created_at.isoformat() if i.created_at else None,
    }


def bill_to_dict(b: DiagnosticBill, with_items: bool = False) -> dict:
    data = {
        'id': b.id,
        'billNumber': b.bill_number,
        'billType': b.bill_type,
        'patientId': b.patient_id,
        'uhid': b.patient.uhid,
        'patientName': b.patient.full_name,
        'subtotal': str(b.subtotal),
        'discount': str(b.discount),
        'tax': str(b.tax),
        'total': str(b.total),
        'paidAmount': str(b.paid_amount),
        'balance': str(b.total - b.paid_amount),
        'paymentStatus': b.payment_status,
        'paymentMethod': b.payment_method,
        'paymentReference': b.payment_reference,
        'issuedAt': b.issued_at.isoformat(),
        'paidAt': b.paid_at.isoformat() if b.paid_at else None,
    }
    if with_items:
        data['items'] = [
            billing_item_to_dict(i) for i in b.items.select_related('patient', 'order', 'bill').order_by('id')
        ]
    return data
