from datetime import timedelta

import pytest
from django.utils import timezone

from core.models import Appointment, Department, Doctor, User
from core.services import doctors as doctor_service

pytestmark = pytest.mark.django_db


def test_admin_creates_doctor_with_defaults(api, admin_user):
    r = api(admin_user).post('/api/doctors', {
        'username': 'drpatel',
        'firstName': 'Nisha',
        'lastName': 'Patel',
        'specialization': 'Pediatrics',
        'departmentName': 'Pediatrics',
    }, format='json')
    assert r.status_code == 201
    data = r.data['data']
    assert data['doctorCode'] == f"DR{timezone.localtime():%y%m}0001"
    assert data['workingDays'] == [1, 2, 3, 4, 5, 6]
    assert data['availableSessions'] == ['morning', 'afternoon', 'evening']
    assert data['sessions']['morning'] == {'startTime': '09:00', 'endTime': '12:00', 'maxPatients': 8}
    assert data['departmentName'] == 'Pediatrics'
    assert r.data['initialPassword']
    user = User.objects.get(username='drpatel')
    assert user.role == 'doctor'
    assert user.check_password(r.data['initialPassword'])


def test_only_admins_manage_doctors(api, receptionist, doctor):
    client = api(receptionist)
    assert client.post('/api/doctors', {'firstName': 'X', 'specialization': 'Y'}, format='json').status_code == 403
    assert client.patch(f'/api/doctors/{doctor.id}', {'roomNumber': '12'}, format='json').status_code == 403
    assert client.post(f'/api/doctors/{doctor.id}/availability', {'available': False},
                       format='json').status_code == 403


def test_doctor_list_is_cached_until_roster_changes(api, receptionist, admin_user, doctor):
    client = api(receptionist)
    assert client.get('/api/doctors').data['pagination']['total'] == 1

    # a row written behind the service's back is not seen until the cache is invalidated
    ghost = User.objects.create_user(username='ghost', password='x', role='doctor', first_name='Zed')
    Doctor.objects.create(user=ghost, doctor_code='DRX0001', specialization='Oncology')
    assert client.get('/api/doctors').data['pagination']['total'] == 1
    doctor_service.invalidate_doctor_cache()
    assert client.get('/api/doctors').data['pagination']['total'] == 2

    api(admin_user).post(f'/api/doctors/{doctor.id}/availability', {'available': False}, format='json')
    listed = client.get('/api/doctors').data['data']
    assert [d['doctorCode'] for d in listed] == ['DRX0001']
    every = client.get('/api/doctors', {'status': 'all'}).data
    assert every['pagination']['total'] == 2


def test_doctor_list_filters_and_pagination(api, receptionist, doctor):
    doctor_service.create_doctor(None, {'username': 'drb', 'first_name': 'Bala', 'specialization': 'Orthopedics'})
    doctor_service.create_doctor(None, {'username': 'drc', 'first_name': 'Chitra', 'specialization': 'Orthopedics'})
    client = api(receptionist)
    r = client.get('/api/doctors', {'specialization': 'orthopedics'})
    assert [d['name'] for d in r.data['data']] == ['Bala', 'Chitra']
    r = client.get('/api/doctors', {'q': 'mehta'})
    assert [d['id'] for d in r.data['data']] == [doctor.id]
    r = client.get('/api/doctors', {'page': 1, 'pageSize': 2})
    assert r.data['pagination'] == {'total': 3, 'page': 1, 'pageSize': 2}
    assert len(r.data['data']) == 2


def test_on_duty_filter_uses_shifts(api, admin_user, doctor):
    other, _ = doctor_service.create_doctor(None, {'username': 'drd', 'first_name': 'Dev',
                                                   'specialization': 'ENT'})
    now = timezone.now()
    client = api(admin_user)
    r = client.post(f'/api/doctors/{other.id}/shifts', {
        'startAt': (now - timedelta(hours=1)).isoformat(),
        'endAt': (now + timedelta(hours=1)).isoformat(),
    }, format='json')
    assert r.status_code == 201
    on_duty = client.get('/api/doctors', {'onDutyOnly': 'true'})
    assert [d['id'] for d in on_duty.data['data']] == [other.id]

    shift_id = r.data['data']['id']
    assert len(client.get(f'/api/doctors/{other.id}/shifts').data['data']) == 1
    assert client.delete(f'/api/doctors/shifts/{shift_id}').status_code == 200
    assert client.get('/api/doctors', {'onDutyOnly': 'true'}).data['data'] == []


def test_shift_must_end_after_start(api, admin_user, doctor):
    now = timezone.now()
    r = api(admin_user).post(f'/api/doctors/{doctor.id}/shifts', {
        'startAt': now.isoformat(), 'endAt': (now - timedelta(hours=2)).isoformat(),
    }, format='json')
    assert r.status_code == 400


def test_update_doctor_roster(api, admin_user, doctor, next_monday):
    client = api(admin_user)
    r = client.patch(f'/api/doctors/{doctor.id}', {
        'workingDays': [3, 1, 1],
        'availableSessions': ['morning'],
        'sessions': {'morning': {'startTime': '08:00', 'endTime': '10:00', 'maxPatients': 2}},
    }, format='json')
    assert r.status_code == 200
    assert r.data['data']['workingDays'] == [1, 3]
    slots = client.get(f'/api/doctors/{doctor.id}/slots', {'date': next_monday.isoformat()}).data['data']
    assert slots == {'morning': ['08:00', '08:30']}
    tuesday = next_monday + timedelta(days=1)
    slots = client.get(f'/api/doctors/{doctor.id}/slots', {'date': tuesday.isoformat()}).data['data']
    assert slots == {'morning': []}


def test_unknown_session_is_rejected(api, admin_user, doctor):
    r = api(admin_user).patch(f'/api/doctors/{doctor.id}', {
        'sessions': {'night': {'startTime': '22:00', 'endTime': '23:00'}},
    }, format='json')
    assert r.status_code == 400


def test_slot_check_and_available_doctors(api, receptionist, patient, doctor, next_monday):
    client = api(receptionist)
    day = next_monday.isoformat()
    client.post('/api/appointments', {'uhid': patient.uhid, 'doctorId': doctor.id, 'date': day, 'time': '10:00'},
                format='json')
    check = client.get(f'/api/doctors/{doctor.id}/slot-check', {'date': day, 'time': '10:00'})
    assert check.data['available'] is False
    assert client.get(f'/api/doctors/{doctor.id}/slot-check', {'date': day, 'time': '10:30'}).data['available']
    assert client.get(f'/api/doctors/{doctor.id}/slot-check', {'date': day}).status_code == 400

    at_ten = client.get('/api/doctors/available', {'date': day, 'time': '10:00'}).data['data']
    assert at_ten == []
    at_half = client.get('/api/doctors/available', {'date': day, 'time': '10:30'}).data['data']
    assert [d['id'] for d in at_half] == [doctor.id]
    # 13:00 falls between sessions
    assert client.get('/api/doctors/available', {'date': day, 'time': '13:00'}).data['data'] == []

    whole_day = client.get('/api/doctors/available', {'date': day}).data['data']
    assert '10:00' not in whole_day[0]['availableSlots']['morning']
    assert '09:30' in whole_day[0]['availableSlots']['morning']


def test_delete_doctor_with_history_deactivates(api, admin_user, patient, doctor, next_monday):
    Appointment.objects.create(appointment_id='APT202501010001', patient=patient, doctor=doctor,
                               appointment_date=next_monday, appointment_time='10:00')
    r = api(admin_user).delete(f'/api/doctors/{doctor.id}')
    assert r.data['result'] == 'deactivated'
    doctor.refresh_from_db()
    assert doctor.status == 'inactive'
    assert not doctor.user.is_active


def test_delete_doctor_without_history_removes_account(api, admin_user, doctor):
    user_id = doctor.user_id
    r = api(admin_user).delete(f'/api/doctors/{doctor.id}')
    assert r.data['result'] == 'deleted'
    assert not Doctor.objects.filter(id=doctor.id).exists()
    assert not User.objects.filter(id=user_id).exists()


def test_specializations_and_departments(api, admin_user, receptionist, doctor):
    client = api(receptionist)
    assert client.get('/api/doctors/specializations').data['data'] == ['Cardiology']
    doctor_service.create_doctor(None, {'username': 'dre', 'first_name': 'Esha', 'specialization': 'Neurology'})
    assert client.get('/api/doctors/specializations').data['data'] == ['Cardiology', 'Neurology']

    assert client.post('/api/departments', {'name': 'Oncology'}, format='json').status_code == 403
    r = api(admin_user).post('/api/departments', {'name': 'Oncology', 'code': 'ONC'}, format='json')
    assert r.status_code == 201
    names = [d['name'] for d in client.get('/api/departments').data['data']]
    assert names == ['Cardiology', 'Oncology']
    Department.objects.filter(name='Oncology').update(is_active=False)
    assert len(client.get('/api/departments').data['data']) == 1
    assert len(client.get('/api/departments', {'includeInactive': '1'}).data['data']) == 2
