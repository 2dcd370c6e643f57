import pytest
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from core.models import BillingItem, DiagnosticOrder
from core.services import diagnostics as diagnostic_service
from core.services.diagnostics import group_order_status, is_abnormal

pytestmark = pytest.mark.django_db


def place_order(client, patient, test, **extra):
    return client.post('/api/diagnostics/orders', {'uhid': patient.uhid, 'testId': test.id, **extra}, format='json')


def test_catalog_is_maintained_by_lab_staff(api, lab_user, receptionist, lab_test):
    lab = api(lab_user)
    r = lab.post('/api/diagnostics/tests', {'serviceType': 'scan', 'name': 'CT Head', 'category': 'Neuro',
                                            'cost': '2500.00', 'contrastRequired': True}, format='json')
    assert r.status_code == 201
    assert r.data['data']['code'] == 'SCN001'
    duplicate = lab.post('/api/diagnostics/tests', {'serviceType': 'lab', 'code': 'lab001', 'name': 'CBC'},
                         format='json')
    assert duplicate.status_code == 400
    assert api(receptionist).post('/api/diagnostics/tests', {'serviceType': 'lab', 'name': 'LFT'},
                                  format='json').status_code == 403

    scans = api(receptionist).get('/api/diagnostics/tests', {'serviceType': 'scan'}).data['data']
    assert [t['name'] for t in scans] == ['CT Head']
    assert lab.get('/api/diagnostics/tests/categories').data['data'] == ['Hematology', 'Neuro']

    lab.patch(f'/api/diagnostics/tests/{lab_test.id}', {'isActive': False}, format='json')
    assert [t['code'] for t in lab.get('/api/diagnostics/tests').data['data']] == ['SCN001']
    everything = lab.get('/api/diagnostics/tests', {'includeInactive': 'true'}).data['data']
    assert len(everything) == 2


def test_order_is_numbered_priced_and_billed(api, doctor, patient, lab_test):
    r = place_order(api(doctor.user), patient, lab_test, clinicalIndication='Fatigue', urgency='urgent')
    assert r.status_code == 201
    data = r.data['data']
    assert data['orderNumber'] == f"LAB-{timezone.localtime():%Y%m%d}-0001"
    assert data['amount'] == '350.00'
    assert data['billingStatus'] == 'pending'
    assert data['status'] == 'ordered'
    assert data['urgency'] == 'urgent'
    item = BillingItem.objects.get(order_id=data['id'])
    assert item.order_type == 'lab'
    assert item.test_name == 'Complete Blood Count'

    second = place_order(api(doctor.user), patient, lab_test)
    assert second.data['data']['orderNumber'].endswith('-0002')


def test_orders_require_clinician(api, lab_user, receptionist, patient, lab_test):
    assert place_order(api(receptionist), patient, lab_test).status_code == 403
    assert place_order(api(lab_user), patient, lab_test).status_code == 403


def test_order_linked_to_unknown_appointment_is_404(api, doctor, patient, lab_test):
    r = place_order(api(doctor.user), patient, lab_test, appointmentId='APT209901010001')
    assert r.status_code == 404
    assert r.data['error']['message'] == 'appointment not found'
    assert not DiagnosticOrder.objects.exists()


def test_order_takes_doctor_from_appointment(api, receptionist, doctor, patient, lab_test, next_monday):
    booked = api(receptionist).post('/api/appointments', {
        'uhid': patient.uhid, 'doctorId': doctor.id, 'date': next_monday.isoformat(), 'time': '10:00',
    }, format='json').data['data']
    r = place_order(api(doctor.user), patient, lab_test, appointmentId=booked['appointmentId'])
    assert r.status_code == 201
    assert r.data['data']['orderingDoctorId'] == doctor.id
    assert r.data['data']['appointmentId'] == booked['id']


def test_only_lab_orders_collect_samples(api, doctor, lab_user, patient, lab_test, xray_test):
    clinician, lab = api(doctor.user), api(lab_user)
    xray = place_order(clinician, patient, xray_test).data['data']
    r = lab.post(f"/api/diagnostics/orders/{xray['orderNumber']}/status", {'status': 'sample_collected'},
                 format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'invalid_transition'
    assert lab.post(f"/api/diagnostics/orders/{xray['id']}/status", {'status': 'in_progress'},
                    format='json').data['data']['status'] == 'in_progress'

    blood = place_order(clinician, patient, lab_test).data['data']
    r = lab.post(f"/api/diagnostics/orders/{blood['id']}/status",
                 {'status': 'sample_collected', 'collectedBy': 'Phlebotomy desk'}, format='json')
    assert r.status_code == 200
    assert r.data['data']['sampleId'].startswith('SMP')
    assert r.data['data']['sampleCollectedBy'] == 'Phlebotomy desk'
    assert r.data['data']['sampleCollectedAt']


def test_results_flag_abnormal_values_and_complete_order(api, doctor, lab_user, receptionist, patient, lab_test):
    order = place_order(api(doctor.user), patient, lab_test).data['data']
    url = f"/api/diagnostics/orders/{order['orderNumber']}/results"
    results = {'results': [
        {'parameterName': 'Hemoglobin', 'value': '10.2', 'unit': 'g/dL', 'referenceRange': '12-16'},
        {'parameterName': 'WBC', 'value': '7000', 'referenceRange': '4000-11000'},
        {'parameterName': 'Smear', 'value': 'normocytic', 'referenceRange': '', 'isAbnormal': True},
    ]}
    assert api(receptionist).post(url, results, format='json').status_code == 403
    r = api(lab_user).post(url, results, format='json')
    assert r.status_code == 201
    assert r.data['orderStatus'] == 'completed'
    assert [x['isAbnormal'] for x in r.data['data']] == [True, False, True]

    detail = api(receptionist).get(f"/api/diagnostics/orders/{order['id']}").data['data']
    assert detail['status'] == 'completed'
    assert detail['completedAt']
    assert len(detail['results']) == 3

    result_id = r.data['data'][0]['id']
    fixed = api(lab_user).patch(f'/api/diagnostics/results/{result_id}', {'value': '13.1'}, format='json')
    assert fixed.data['data']['isAbnormal'] is False


def test_result_edit_keeps_manual_abnormal_flag(api, doctor, lab_user, patient, lab_test):
    order = place_order(api(doctor.user), patient, lab_test).data['data']
    lab = api(lab_user)
    r = lab.post(f"/api/diagnostics/orders/{order['id']}/results", {'results': [
        {'parameterName': 'Smear', 'value': 'target cells seen', 'isAbnormal': True},
    ]}, format='json')
    url = f"/api/diagnostics/results/{r.data['data'][0]['id']}"
    noted = lab.patch(url, {'notes': 'reviewed by pathologist'}, format='json')
    assert noted.status_code == 200
    assert noted.data['data']['isAbnormal'] is True
    assert noted.data['data']['notes'] == 'reviewed by pathologist'

    cleared = lab.patch(url, {'isAbnormal': False}, format='json')
    assert cleared.data['data']['isAbnormal'] is False
    ranged = lab.patch(url, {'value': '18', 'referenceRange': '4-11'}, format='json')
    assert ranged.data['data']['isAbnormal'] is True


def test_results_need_at_least_one_entry(api, doctor, lab_user, patient, lab_test):
    order = place_order(api(doctor.user), patient, lab_test).data['data']
    r = api(lab_user).post(f"/api/diagnostics/orders/{order['id']}/results", {'results': []}, format='json')
    assert r.status_code == 400


def test_cancelling_an_order_voids_its_billing_item(api, doctor, patient, xray_test):
    clinician = api(doctor.user)
    order = place_order(clinician, patient, xray_test).data['data']
    r = clinician.post(f"/api/diagnostics/orders/{order['id']}/status", {'status': 'cancelled'}, format='json')
    assert r.data['data']['billingStatus'] == 'void'
    r = clinician.post(f"/api/diagnostics/orders/{order['id']}/status", {'status': 'in_progress'}, format='json')
    assert r.status_code == 400


def test_unstarted_order_can_be_deleted_with_its_charge(api, doctor, patient, lab_test):
    clinician = api(doctor.user)
    order = place_order(clinician, patient, lab_test).data['data']
    r = clinician.delete(f"/api/diagnostics/orders/{order['id']}")
    assert r.status_code == 200
    assert not DiagnosticOrder.objects.filter(id=order['id']).exists()
    assert not BillingItem.objects.exists()
    assert clinician.get(f"/api/diagnostics/orders/{order['id']}").status_code == 404


def test_started_order_cannot_be_deleted(api, doctor, patient, xray_test):
    clinician = api(doctor.user)
    order = place_order(clinician, patient, xray_test).data['data']
    clinician.post(f"/api/diagnostics/orders/{order['id']}/status", {'status': 'in_progress'}, format='json')
    r = clinician.delete(f"/api/diagnostics/orders/{order['id']}")
    assert r.status_code == 400
    assert 'status' in r.data['error']['message']
    assert BillingItem.objects.filter(order_id=order['id'], status='pending').exists()


def test_billed_order_cannot_be_deleted(api, doctor, receptionist, patient, lab_test):
    clinician = api(doctor.user)
    order = place_order(clinician, patient, lab_test).data['data']
    item = BillingItem.objects.get(order_id=order['id'])
    api(receptionist).post(f'/api/billing/items/{item.id}/status', {'status': 'billed'}, format='json')
    r = clinician.delete(f"/api/diagnostics/orders/{order['id']}")
    assert r.status_code == 400
    assert 'billing' in r.data['error']['message']
    assert DiagnosticOrder.objects.filter(id=order['id']).exists()


def test_order_number_retries_after_collision(monkeypatch, patient, lab_test):
    first = diagnostic_service.create_order(None, patient, lab_test)
    numbers = iter([first.order_number, 'LAB-20250101-0099'])
    monkeypatch.setattr(diagnostic_service, 'generate_order_number', lambda service_type: next(numbers))
    second = diagnostic_service.create_order(None, patient, lab_test)
    assert second.order_number == 'LAB-20250101-0099'
    assert BillingItem.objects.filter(order=second, amount=lab_test.cost).exists()


def test_order_number_gives_up_after_repeated_collisions(monkeypatch, patient, lab_test):
    first = diagnostic_service.create_order(None, patient, lab_test)
    monkeypatch.setattr(diagnostic_service, 'generate_order_number', lambda service_type: first.order_number)
    with pytest.raises(ValidationError):
        diagnostic_service.create_order(None, patient, lab_test)
    assert DiagnosticOrder.objects.count() == 1
    assert BillingItem.objects.count() == 1


def test_order_listing_and_patient_view(api, doctor, receptionist, patient, other_patient, lab_test, xray_test):
    clinician = api(doctor.user)
    place_order(clinician, patient, lab_test)
    place_order(clinician, patient, xray_test)
    place_order(clinician, other_patient, lab_test)
    client = api(receptionist)
    r = client.get('/api/diagnostics/orders', {'serviceType': 'lab'})
    assert r.data['pagination']['total'] == 2
    r = client.get('/api/diagnostics/orders', {'uhid': patient.uhid})
    assert r.data['pagination']['total'] == 2
    mine = client.get(f'/api/patients/{patient.uhid}/orders')
    assert len(mine.data['data']) == 2
    assert mine.data['groupOrders'] == []
    stats = client.get('/api/diagnostics/stats').data['data']
    assert stats['totalOrders'] == 3
    assert stats['byType']['lab'] == {'total': 2, 'pending': 2}
    assert stats['pendingOrders'] == 3


def test_groups_and_group_orders(api, lab_user, doctor, patient, lab_test, xray_test):
    lab = api(lab_user)
    r = lab.post('/api/diagnostics/groups', {
        'name': 'Chest pain work-up',
        'category': 'Cardiology',
        'items': [
            {'testId': lab_test.id},
            {'testId': xray_test.id, 'defaultSelected': False},
        ],
    }, format='json')
    assert r.status_code == 201
    group = r.data['data']
    assert group['serviceTypes'] == ['lab', 'xray']
    assert [i['testId'] for i in group['items']] == [lab_test.id, xray_test.id]

    clinician = api(doctor.user)
    defaults = clinician.post('/api/diagnostics/group-orders', {'uhid': patient.uhid, 'groupId': group['id']},
                              format='json')
    assert defaults.status_code == 201
    assert [o['testId'] for o in defaults.data['data']['orders']] == [lab_test.id]
    assert defaults.data['data']['groupName'] == 'Chest pain work-up'

    full = clinician.post('/api/diagnostics/group-orders', {
        'uhid': patient.uhid, 'groupId': group['id'], 'testIds': [lab_test.id, xray_test.id], 'urgency': 'stat',
    }, format='json').data['data']
    assert full['status'] == 'ordered'
    assert full['totalAmount'] == '950.00'
    assert {o['urgency'] for o in full['orders']} == {'stat'}

    xray_order = full['orders'][1]
    api(lab_user).post(f"/api/diagnostics/orders/{xray_order['id']}/status", {'status': 'in_progress'},
                       format='json')
    refreshed = clinician.get(f"/api/diagnostics/group-orders/{full['id']}").data['data']
    assert refreshed['status'] == 'in_progress'
    assert len(clinician.get(f'/api/patients/{patient.uhid}/orders').data['groupOrders']) == 2


def test_group_order_needs_a_selection(api, doctor, patient):
    r = api(doctor.user).post('/api/diagnostics/group-orders', {'uhid': patient.uhid}, format='json')
    assert r.status_code == 400


def test_group_items_can_be_edited(api, lab_user, lab_test, xray_test):
    lab = api(lab_user)
    group = lab.post('/api/diagnostics/groups', {'name': 'Basic', 'items': [{'testId': lab_test.id}]},
                     format='json').data['data']
    r = lab.post(f"/api/diagnostics/groups/{group['id']}/items", {'testId': xray_test.id}, format='json')
    assert r.status_code == 201
    assert r.data['data']['serviceTypes'] == ['lab', 'xray']
    again = lab.post(f"/api/diagnostics/groups/{group['id']}/items", {'testId': xray_test.id}, format='json')
    assert again.status_code == 400

    item_id = r.data['data']['items'][1]['id']
    r = lab.patch(f'/api/diagnostics/group-items/{item_id}', {'defaultSelected': False}, format='json')
    assert r.data['data']['items'][1]['defaultSelected'] is False
    r = lab.delete(f'/api/diagnostics/group-items/{item_id}')
    assert r.data['data']['serviceTypes'] == ['lab']

    lab.patch(f"/api/diagnostics/groups/{group['id']}", {'isActive': False}, format='json')
    assert lab.get('/api/diagnostics/groups').data['data'] == []
    assert lab.delete(f"/api/diagnostics/groups/{group['id']}").status_code == 200


@pytest.mark.parametrize('value,reference,expected', [
    ('5', '4-6', False),
    ('3.9', '4-6', True),
    ('200', '<200', True),
    ('199', '<200', False),
    ('45', '>=40', False),
    ('positive', '4-6', False),
    ('5', 'see notes', False),
])
def test_is_abnormal(value, reference, expected):
    assert is_abnormal(value, reference) is expected


def test_group_order_status_rollup():
    assert group_order_status([]) == 'cancelled'
    assert group_order_status(['cancelled', 'cancelled']) == 'cancelled'
    assert group_order_status(['completed', 'cancelled']) == 'completed'
    assert group_order_status(['ordered', 'ordered']) == 'ordered'
    assert group_order_status(['ordered', 'completed']) == 'in_progress'
