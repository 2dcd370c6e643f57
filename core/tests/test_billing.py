import pytest
from django.utils import timezone

from core.models import BillingItem, DiagnosticBill
from core.services import billing as billing_service
from core.services import diagnostics as diagnostic_service

pytestmark = pytest.mark.django_db


@pytest.fixture
def pending_items(patient, lab_test, xray_test):
    orders = [diagnostic_service.create_order(None, patient, t) for t in (lab_test, xray_test)]
    return [BillingItem.objects.get(order=o) for o in orders]


def test_bill_groups_pending_items(api, receptionist, patient, pending_items):
    client = api(receptionist)
    r = client.post('/api/billing/bills', {
        'uhid': patient.uhid,
        'itemIds': [i.id for i in pending_items],
        'discount': '50.00',
        'tax': '18.00',
    }, format='json')
    assert r.status_code == 201
    bill = r.data['data']
    assert bill['billNumber'] == f"DB-{timezone.localtime():%y%m}-0001"
    assert bill['subtotal'] == '950.00'
    assert bill['total'] == '918.00'
    assert bill['paymentStatus'] == 'pending'
    assert {i['status'] for i in bill['items']} == {'billed'}
    assert {i['billNumber'] for i in bill['items']} == {bill['billNumber']}

    again = client.post('/api/billing/bills', {'uhid': patient.uhid, 'itemIds': [pending_items[0].id]},
                        format='json')
    assert again.status_code == 400
    assert 'itemIds' in again.data['error']['message']


def test_bill_payment_settles_items_once(api, receptionist, patient, pending_items):
    client = api(receptionist)
    number = client.post('/api/billing/bills', {'uhid': patient.uhid, 'itemIds': [i.id for i in pending_items]},
                         format='json').data['data']['billNumber']
    assert client.post(f'/api/billing/bills/{number}/pay', {}, format='json').status_code == 400
    r = client.post(f'/api/billing/bills/{number}/pay', {'paymentMethod': 'upi'}, format='json')
    assert r.status_code == 200
    assert r.data['data']['paymentStatus'] == 'paid'
    assert {(i['status'], i['paymentMethod']) for i in r.data['data']['items']} == {('paid', 'upi')}
    twice = client.post(f'/api/billing/bills/{number}/pay', {'paymentMethod': 'cash'}, format='json')
    assert twice.status_code == 400

    detail = client.get(f'/api/billing/bills/{number}')
    assert detail.data['data']['paymentMethod'] == 'upi'
    assert client.get('/api/billing/bills/DB-0000-0000').status_code == 404


def test_partial_payments_until_settled(api, receptionist, patient, pending_items):
    client = api(receptionist)
    number = client.post('/api/billing/bills', {'uhid': patient.uhid, 'itemIds': [i.id for i in pending_items]},
                         format='json').data['data']['billNumber']
    url = f'/api/billing/bills/{number}/pay'

    r = client.post(url, {'paymentMethod': 'cash', 'amount': '400.00', 'reference': 'RCPT-1'}, format='json')
    assert r.status_code == 200
    bill = r.data['data']
    assert bill['paymentStatus'] == 'partial'
    assert bill['paidAmount'] == '400.00'
    assert bill['balance'] == '550.00'
    assert bill['paymentReference'] == 'RCPT-1'
    assert bill['paidAt'] is None
    assert {i['status'] for i in bill['items']} == {'billed'}
    assert [i['paidAmount'] for i in bill['items']] == ['147.37', '252.63']

    over = client.post(url, {'paymentMethod': 'cash', 'amount': '600.00'}, format='json')
    assert over.status_code == 400
    assert 'amount' in over.data['error']['message']

    listed = client.get('/api/billing/bills', {'paymentStatus': 'partial'}).data['data']
    assert [b['billNumber'] for b in listed] == [number]
    assert client.get('/api/billing/stats').data['data']['unpaidBills'] == 1

    r = client.post(url, {'paymentMethod': 'card', 'amount': '550.00'}, format='json')
    bill = r.data['data']
    assert bill['paymentStatus'] == 'paid'
    assert bill['balance'] == '0.00'
    assert bill['paidAt']
    assert [(i['status'], i['paidAmount']) for i in bill['items']] == [('paid', '350.00'), ('paid', '600.00')]
    assert client.post(url, {'paymentMethod': 'cash', 'amount': '1.00'}, format='json').status_code == 400


def test_payment_amount_must_be_positive(api, receptionist, patient, pending_items):
    client = api(receptionist)
    number = client.post('/api/billing/bills', {'uhid': patient.uhid, 'itemIds': [pending_items[0].id]},
                         format='json').data['data']['billNumber']
    r = client.post(f'/api/billing/bills/{number}/pay', {'paymentMethod': 'cash', 'amount': '0'}, format='json')
    assert r.status_code == 400
    assert DiagnosticBill.objects.get(bill_number=number).payment_status == 'pending'


def test_bill_number_retries_after_collision(monkeypatch, patient, pending_items):
    first = billing_service.create_bill(None, patient, [pending_items[0].id])
    numbers = iter([first.bill_number, 'DB-2501-0042'])
    monkeypatch.setattr(billing_service, 'generate_bill_number', lambda prefix: next(numbers))
    second = billing_service.create_bill(None, patient, [pending_items[1].id])
    assert second.bill_number == 'DB-2501-0042'
    assert BillingItem.objects.get(id=pending_items[1].id).bill == second


def test_bill_rejects_mixed_patients_and_excess_discount(api, receptionist, patient, other_patient,
                                                         pending_items, lab_test):
    stranger = diagnostic_service.create_order(None, other_patient, lab_test)
    stranger_item = BillingItem.objects.get(order=stranger)
    client = api(receptionist)
    mixed = client.post('/api/billing/bills', {
        'uhid': patient.uhid, 'itemIds': [pending_items[0].id, stranger_item.id],
    }, format='json')
    assert mixed.status_code == 400
    too_generous = client.post('/api/billing/bills', {
        'uhid': patient.uhid, 'itemIds': [pending_items[0].id], 'discount': '400.00',
    }, format='json')
    assert too_generous.status_code == 400
    assert 'discount' in too_generous.data['error']['message']
    assert BillingItem.objects.filter(status='pending').count() == 3


def test_custom_bill_prefix(api, nurse, patient, pending_items):
    r = api(nurse).post('/api/billing/bills', {
        'uhid': patient.uhid, 'itemIds': [pending_items[0].id], 'prefix': 'opd', 'billType': 'opd',
    }, format='json')
    assert r.data['data']['billNumber'].startswith('OPD-')
    assert r.data['data']['billType'] == 'opd'


def test_single_item_status(api, receptionist, pending_items):
    client = api(receptionist)
    item = pending_items[0]
    url = f'/api/billing/items/{item.id}/status'
    r = client.post(url, {'status': 'paid'}, format='json')
    assert r.status_code == 400
    r = client.post(url, {'status': 'paid', 'paymentMethod': 'card'}, format='json')
    assert r.data['data']['status'] == 'paid'
    assert r.data['data']['billedAt']
    r = client.post(url, {'status': 'billed'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'invalid_transition'
    assert client.post('/api/billing/items/9999/status', {'status': 'billed'}, format='json').status_code == 404


def test_item_listing_and_stats(api, receptionist, patient, pending_items):
    client = api(receptionist)
    client.post(f'/api/billing/items/{pending_items[0].id}/status', {'status': 'paid', 'paymentMethod': 'cash'},
                format='json')
    r = client.get('/api/billing/items', {'status': 'pending'})
    assert [i['orderType'] for i in r.data['data']] == ['xray']
    r = client.get('/api/billing/items', {'uhid': patient.uhid})
    assert r.data['pagination']['total'] == 2

    stats = client.get('/api/billing/stats').data['data']
    assert stats['pendingCount'] == 1
    assert stats['paidCount'] == 1
    assert stats['pendingAmount'] == '600.00'
    assert stats['paidToday'] == '350.00'


def test_billing_is_front_desk_only(api, lab_user, doctor):
    assert api(lab_user).get('/api/billing/items').status_code == 403
    assert api(doctor.user).get('/api/billing/stats').status_code == 403
