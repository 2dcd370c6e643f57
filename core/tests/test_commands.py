from io import StringIO

import pytest
from django.core.cache import cache
from django.core.management import call_command
from django.utils import timezone

from core.models import DiagnosticGroup, DiagnosticTest, Doctor, Patient, User
from core.services import diagnostics as diagnostic_service
from core.services import doctors as doctor_service
from core.services.queue import add_to_queue

pytestmark = pytest.mark.django_db


def run(name, *args):
    out = StringIO()
    call_command(name, *args, stdout=out)
    return out.getvalue()


def test_seed_hospital_is_idempotent():
    assert 'Hospital data seeded.' in run('seed_hospital')
    counts = (DiagnosticTest.objects.count(), DiagnosticGroup.objects.count(), Doctor.objects.count(),
              User.objects.count())
    run('seed_hospital')
    assert (DiagnosticTest.objects.count(), DiagnosticGroup.objects.count(), Doctor.objects.count(),
            User.objects.count()) == counts

    panel = DiagnosticGroup.objects.get(name='Master Health Check')
    assert panel.service_types == ['lab', 'scan', 'xray']
    assert panel.items.count() == 7
    assert User.objects.get(username='lab1').check_password('123456')
    assert Doctor.objects.get(user__username='drrao').working_days == [1, 2, 3, 4, 5, 6]


def test_seed_hospital_without_staff():
    run('seed_hospital', '--no-staff')
    assert DiagnosticTest.objects.exists()
    assert not User.objects.exists()


def test_ensure_test_users_resets_accounts():
    user = User.objects.create_user(username='nurse1', password='changed', role='lab', is_active=False)
    output = run('ensure_test_users')
    assert 'All test users ensured.' in output
    user.refresh_from_db()
    assert user.role == 'nurse'
    assert user.is_active
    assert user.check_password('123456')
    assert User.objects.filter(username='doctor1', role='doctor').exists()


def test_refresh_caches_warms_doctor_listing(api, receptionist, doctor):
    old_version = doctor_service.cache_version()
    assert 'Refreshed 3 keys' in run('refresh_caches')
    version = doctor_service.cache_version()
    assert version == old_version + 1
    assert cache.get(f'doctors:v={version}:specializations') == ['Cardiology']
    assert cache.get(f'dashboard:{timezone.localdate().isoformat()}') is not None

    listed = api(receptionist).get('/api/doctors')
    assert listed.data['pagination'] == {'total': 1, 'page': 1, 'pageSize': 1}


def test_dashboard_summary(api, receptionist, patient, lab_test):
    Patient.objects.create(uhid='AH25010003', first_name='Meera', gender='female',
                           registration_status='pending_vitals')
    add_to_queue(patient)
    diagnostic_service.create_order(None, patient, lab_test)

    r = api(receptionist).get('/api/dashboard')
    assert r.status_code == 200
    data = r.data['data']
    assert data['date'] == timezone.localdate().isoformat()
    assert data['registrationsToday'] == 2
    assert data['pendingVitals'] == 1
    assert data['queueWaiting'] == 1
    assert data['queueInProgress'] == 0
    assert data['appointmentsToday'] == 0
    assert data['pendingDiagnostics'] == 1
    assert data['unpaidBillingTotal'] == '350.00'
