from datetime import timedelta

import pytest
from django.utils import timezone

from core.models import Appointment
from core.services import appointments as appointment_service

pytestmark = pytest.mark.django_db


def book(client, patient, doctor, day, at, **extra):
    payload = {'uhid': patient.uhid, 'doctorId': doctor.id, 'date': day.isoformat(), 'time': at, **extra}
    return client.post('/api/appointments', payload, format='json')


def test_booking_assigns_id_token_and_session(api, receptionist, patient, other_patient, doctor, next_monday):
    client = api(receptionist)
    first = book(client, patient, doctor, next_monday, '10:00')
    second = book(client, other_patient, doctor, next_monday, '14:30')
    assert first.status_code == 201
    data = first.data['data']
    assert data['appointmentId'] == f"APT{timezone.localtime():%Y%m%d}0001"
    assert second.data['data']['appointmentId'].endswith('0002')
    assert data['tokenNumber'] == 1
    assert second.data['data']['tokenNumber'] == 2
    assert data['sessionType'] == 'morning'
    assert second.data['data']['sessionType'] == 'afternoon'
    assert data['status'] == 'scheduled'
    assert data['time'] == '10:00'
    assert data['durationMinutes'] == 30


def test_double_booking_returns_conflict_with_alternatives(api, receptionist, patient, other_patient, doctor,
                                                           next_monday):
    client = api(receptionist)
    assert book(client, patient, doctor, next_monday, '10:00').status_code == 201
    r = book(client, other_patient, doctor, next_monday, '10:15')
    assert r.status_code == 409
    error = r.data['error']
    assert error['code'] == 'booking_conflict'
    assert any('conflicting appointment at 10:00' in e for e in error['errors'])
    times = [s['time'] for s in error['suggestions']]
    assert times == ['09:00', '09:30', '10:30', '11:00', '11:30']
    assert all(s['date'] == next_monday.isoformat() for s in error['suggestions'])
    assert Appointment.objects.count() == 1


def test_adjacent_slots_do_not_conflict(api, receptionist, patient, other_patient, doctor, next_monday):
    client = api(receptionist)
    assert book(client, patient, doctor, next_monday, '10:00').status_code == 201
    assert book(client, other_patient, doctor, next_monday, '10:30').status_code == 201


def test_patient_cannot_be_in_two_places(api, receptionist, patient, doctor, next_monday):
    from core.services import doctors as doctor_service

    other_doctor, _ = doctor_service.create_doctor(None, {'username': 'drkhan', 'first_name': 'Sana',
                                                          'specialization': 'Dermatology'})
    client = api(receptionist)
    assert book(client, patient, doctor, next_monday, '10:00').status_code == 201
    r = book(client, patient, other_doctor, next_monday, '10:00')
    assert r.status_code == 409
    assert any(e.startswith('Patient has a conflicting appointment') for e in r.data['error']['errors'])


def test_past_booking_is_a_validation_error(api, receptionist, patient, doctor):
    yesterday = timezone.localdate() - timedelta(days=1)
    r = book(api(receptionist), patient, doctor, yesterday, '10:00')
    assert r.status_code == 400
    assert 'Appointment cannot be scheduled in the past' in r.data['error']['message']['errors']


def test_booking_too_far_ahead_is_rejected(api, receptionist, patient, doctor):
    far = timezone.localdate() + timedelta(days=200)
    r = book(api(receptionist), patient, doctor, far, '10:00')
    assert r.status_code == 400
    assert 'more than 180 days' in r.data['error']['message']['errors'][0]


def test_daily_limit_counts_as_conflict(api, receptionist, patient, other_patient, doctor, next_monday):
    doctor.max_patients_per_day = 1
    doctor.save()
    client = api(receptionist)
    assert book(client, patient, doctor, next_monday, '10:00').status_code == 201
    r = book(client, other_patient, doctor, next_monday, '15:00')
    assert r.status_code == 409
    assert 'maximum daily appointment limit (1)' in r.data['error']['errors'][-1]


def test_unknown_doctor_is_rejected(api, receptionist, patient, next_monday):
    r = api(receptionist).post('/api/appointments', {'uhid': patient.uhid, 'doctorId': 9999,
                                                     'date': next_monday.isoformat(), 'time': '10:00'},
                               format='json')
    assert r.status_code == 400
    assert 'doctorId' in r.data['error']['message']


def test_out_of_hours_booking_carries_warning(api, receptionist, patient, doctor, next_monday):
    r = book(api(receptionist), patient, doctor, next_monday, '06:00')
    assert r.status_code == 201
    assert r.data['warnings']
    assert r.data['data']['sessionType'] == ''


def test_emergency_booking(api, nurse, patient, doctor, next_monday):
    r = book(api(nurse), patient, doctor, next_monday, '23:00', isEmergency=True)
    assert r.status_code == 201
    assert r.data['data']['sessionType'] == 'emergency'
    assert r.data['data']['type'] == 'emergency'
    assert r.data['data']['isEmergency'] is True


def test_lab_staff_cannot_book(api, lab_user, patient, doctor, next_monday):
    assert book(api(lab_user), patient, doctor, next_monday, '10:00').status_code == 403


def test_validate_endpoint_is_a_dry_run(api, receptionist, patient, other_patient, doctor, next_monday):
    client = api(receptionist)
    book(client, patient, doctor, next_monday, '10:00')
    r = client.post('/api/appointments/validate', {'uhid': other_patient.uhid, 'doctorId': doctor.id,
                                                   'date': next_monday.isoformat(), 'time': '10:00'},
                    format='json')
    assert r.status_code == 200
    assert r.data['isValid'] is False
    assert len(r.data['suggestions']) == 5
    assert Appointment.objects.count() == 1


def test_status_transitions(api, receptionist, patient, doctor, next_monday):
    client = api(receptionist)
    appointment_id = book(client, patient, doctor, next_monday, '10:00').data['data']['appointmentId']
    url = f'/api/appointments/{appointment_id}/status'
    r = client.post(url, {'status': 'cancelled'}, format='json')
    assert r.status_code == 400
    assert r.data['detail'] == 'use the cancel endpoint'
    assert client.post(url, {'status': 'confirmed'}, format='json').data['newStatus'] == 'confirmed'
    assert client.post(url, {'status': 'completed'}, format='json').data['newStatus'] == 'completed'
    r = client.post(url, {'status': 'in_progress'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['message'] == 'cannot change status from completed to in_progress'


def test_reschedule_moves_slot_and_regenerates_token(api, receptionist, patient, other_patient, doctor,
                                                     next_monday):
    client = api(receptionist)
    tuesday = next_monday + timedelta(days=1)
    book(client, other_patient, doctor, next_monday, '09:00')
    appointment_id = book(client, patient, doctor, next_monday, '10:00').data['data']['appointmentId']
    r = client.post(f'/api/appointments/{appointment_id}/reschedule',
                    {'date': tuesday.isoformat(), 'time': '14:00'}, format='json')
    assert r.status_code == 200
    data = r.data['data']
    assert data['status'] == 'rescheduled'
    assert data['date'] == tuesday.isoformat()
    assert data['time'] == '14:00'
    assert data['tokenNumber'] == 1
    assert data['sessionType'] == 'afternoon'
    # the old slot is free again
    assert book(client, other_patient, doctor, next_monday, '10:00').status_code == 201


def test_reschedule_into_conflict_is_refused(api, receptionist, patient, other_patient, doctor, next_monday):
    client = api(receptionist)
    book(client, other_patient, doctor, next_monday, '11:00')
    appointment_id = book(client, patient, doctor, next_monday, '10:00').data['data']['appointmentId']
    r = client.post(f'/api/appointments/{appointment_id}/reschedule',
                    {'date': next_monday.isoformat(), 'time': '11:00'}, format='json')
    assert r.status_code == 409
    assert Appointment.objects.get(appointment_id=appointment_id).appointment_time.strftime('%H:%M') == '10:00'


def test_cancel_frees_the_slot(api, receptionist, patient, other_patient, doctor, next_monday):
    client = api(receptionist)
    appointment_id = book(client, patient, doctor, next_monday, '10:00').data['data']['appointmentId']
    r = client.post(f'/api/appointments/{appointment_id}/cancel', {'reason': 'travelling'}, format='json')
    assert r.data['newStatus'] == 'cancelled'
    assert Appointment.objects.get(appointment_id=appointment_id).cancel_reason == 'travelling'
    r = client.post(f'/api/appointments/{appointment_id}/cancel', {}, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'invalid_transition'
    assert book(client, other_patient, doctor, next_monday, '10:00').status_code == 201


def test_medical_info_is_clinician_only(api, receptionist, patient, doctor, next_monday):
    appointment_id = book(api(receptionist), patient, doctor, next_monday, '10:00').data['data']['appointmentId']
    url = f'/api/appointments/{appointment_id}/medical'
    assert api(receptionist).post(url, {'diagnosis': 'Hypertension'}, format='json').status_code == 403
    r = api(doctor.user).post(url, {'diagnosis': 'Hypertension', 'treatmentPlan': 'Low salt diet',
                                    'prescriptions': [{'drug': 'Amlodipine', 'dose': '5mg'}]}, format='json')
    assert r.status_code == 200
    assert r.data['data']['diagnosis'] == 'Hypertension'
    assert r.data['data']['prescriptions'][0]['drug'] == 'Amlodipine'


def test_available_slots(api, receptionist, patient, doctor, next_monday):
    client = api(receptionist)
    book(client, patient, doctor, next_monday, '10:00')
    r = client.get('/api/appointments/slots', {'doctorId': doctor.id, 'date': next_monday.isoformat()})
    slots = r.data['data']
    assert len(slots) == 18
    assert {s['sessionType'] for s in slots} == {'morning', 'afternoon', 'evening'}
    taken = [s for s in slots if not s['available']]
    assert [s['time'] for s in taken] == ['10:00']

    emergency = client.get('/api/appointments/slots', {'doctorId': doctor.id, 'date': next_monday.isoformat(),
                                                       'emergency': 'true'}).data['data']
    assert len(emergency) == 48
    assert all(s['isEmergency'] for s in emergency)

    sunday = next_monday - timedelta(days=1)
    r = client.get('/api/appointments/slots', {'doctorId': doctor.id, 'date': sunday.isoformat()})
    assert r.data['data'] == []


def test_schedule_upcoming_and_stats(api, receptionist, patient, other_patient, doctor, next_monday):
    client = api(receptionist)
    book(client, other_patient, doctor, next_monday, '11:00')
    cancelled = book(client, patient, doctor, next_monday, '10:00').data['data']['appointmentId']
    client.post(f'/api/appointments/{cancelled}/cancel', {}, format='json')

    schedule = client.get('/api/appointments/schedule', {'doctorId': doctor.id, 'date': next_monday.isoformat()})
    assert [a['time'] for a in schedule.data['data']] == ['11:00']
    upcoming = client.get('/api/appointments/upcoming', {'doctorId': doctor.id})
    assert len(upcoming.data['data']) == 1
    stats = client.get('/api/appointments/stats').data['data']
    assert stats['total'] == 2
    assert stats['cancelled'] == 1
    assert stats['upcomingCount'] == 1

    history = client.get(f'/api/patients/{patient.uhid}/appointments')
    assert [a['appointmentId'] for a in history.data['history']] == [cancelled]
    assert history.data['upcoming'] == []


def test_rescheduled_appointments_count_as_upcoming(api, receptionist, patient, other_patient, doctor,
                                                   next_monday):
    client = api(receptionist)
    book(client, other_patient, doctor, next_monday, '11:00')
    moved = book(client, patient, doctor, next_monday, '10:00').data['data']['appointmentId']
    client.post(f'/api/appointments/{moved}/reschedule',
                {'date': (next_monday + timedelta(days=1)).isoformat(), 'time': '10:00'}, format='json')

    upcoming = client.get('/api/appointments/upcoming', {'doctorId': doctor.id}).data['data']
    stats = client.get('/api/appointments/stats').data['data']
    assert len(upcoming) == 2
    assert stats['upcomingCount'] == len(upcoming)


def test_booking_retries_when_appointment_id_is_taken(api, receptionist, patient, other_patient, doctor,
                                                      next_monday, monkeypatch):
    client = api(receptionist)
    taken = book(client, other_patient, doctor, next_monday, '09:00').data['data']['appointmentId']
    ids = iter([taken, 'APT202501010042'])
    monkeypatch.setattr(appointment_service, 'generate_appointment_id', lambda: next(ids))
    r = book(client, patient, doctor, next_monday, '10:00')
    assert r.status_code == 201
    assert r.data['data']['appointmentId'] == 'APT202501010042'
    assert Appointment.objects.count() == 2


def test_booking_reports_exhausted_appointment_ids(api, receptionist, patient, other_patient, doctor,
                                                   next_monday, monkeypatch):
    client = api(receptionist)
    taken = book(client, other_patient, doctor, next_monday, '09:00').data['data']['appointmentId']
    monkeypatch.setattr(appointment_service, 'generate_appointment_id', lambda: taken)
    r = book(client, patient, doctor, next_monday, '10:00')
    assert r.status_code == 400
    assert 'appointmentId' in r.data['error']['message']
    assert Appointment.objects.count() == 1


def test_listing_filters_by_status(api, receptionist, patient, other_patient, doctor, next_monday):
    client = api(receptionist)
    book(client, patient, doctor, next_monday, '10:00')
    cancelled = book(client, other_patient, doctor, next_monday, '11:00').data['data']['appointmentId']
    client.post(f'/api/appointments/{cancelled}/cancel', {}, format='json')
    r = client.get('/api/appointments', {'status': 'scheduled'})
    assert r.data['pagination']['total'] == 1
    assert r.data['data'][0]['patientUhid'] == patient.uhid
    assert client.get('/api/appointments/APT000').status_code == 404
