from datetime import timedelta

import pytest
from django.core.cache import cache
from django.utils import timezone
from rest_framework.test import APIClient

from core.models import DiagnosticTest, Patient, User
from core.services import doctors as doctor_service


@pytest.fixture(autouse=True)
def _clear_cache():
    # throttles and doctor listings live in the cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture(autouse=True)
def _media_root(settings, tmp_path):
    settings.MEDIA_ROOT = tmp_path


def make_user(username, role, password='P@ssw0rd1', **extra):
    return User.objects.create_user(username=username, password=password, role=role, **extra)


@pytest.fixture
def admin_user(db):
    return make_user('admin1', 'admin')


@pytest.fixture
def receptionist(db):
    return make_user('reception1', 'receptionist')


@pytest.fixture
def nurse(db):
    return make_user('nurse1', 'nurse')


@pytest.fixture
def lab_user(db):
    return make_user('lab1', 'lab')


@pytest.fixture
def api():
    """Return a factory for APIClients authenticated as the given user."""
    def _client(user=None):
        client = APIClient()
        if user is not None:
            client.force_authenticate(user=user)
        return client
    return _client


@pytest.fixture
def doctor(db):
    doc, _ = doctor_service.create_doctor(None, {
        'username': 'drmehta',
        'first_name': 'Ravi',
        'last_name': 'Mehta',
        'specialization': 'Cardiology',
        'department_name': 'Cardiology',
    })
    return doc


@pytest.fixture
def patient(db):
    return Patient.objects.create(uhid='AH25010001', first_name='Asha', last_name='Rao', gender='female',
                                  phone='9876543210', age=34)


@pytest.fixture
def other_patient(db):
    return Patient.objects.create(uhid='AH25010002', first_name='Vikram', last_name='Singh', gender='male',
                                  phone='9876500000', age=51)


@pytest.fixture
def next_monday():
    today = timezone.localdate()
    return today + timedelta(days=7 - today.weekday())


@pytest.fixture
def lab_test(db):
    return DiagnosticTest.objects.create(service_type='lab', code='LAB001', name='Complete Blood Count',
                                         category='Hematology', sample_type='Blood', cost='350.00')


@pytest.fixture
def xray_test(db):
    return DiagnosticTest.objects.create(service_type='xray', code='XRY001', name='Chest X-Ray PA View',
                                         category='Chest', body_part='Chest', cost='600.00')
