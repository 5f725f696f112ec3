from datetime import date

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from records.models import CareTeamMember, User
from records.roles import Role
from records.services import patients as patient_service

PASSWORD = 'P@ssw0rd-123'


@pytest.fixture(autouse=True)
def _reset_throttles():
    # throttle counters live in the cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def make_user(db):
    def _make(username, role, **extra):
        return User.objects.create_user(username=username, password=PASSWORD, role=role, **extra)
    return _make


@pytest.fixture
def admin_user(make_user):
    return make_user('admin1', Role.ADMIN)


@pytest.fixture
def physician(make_user):
    return make_user('drsmith', Role.PHYSICIAN, first_name='John', last_name='Smith')


@pytest.fixture
def nurse(make_user):
    return make_user('nurse1', Role.NURSE)


@pytest.fixture
def receptionist(make_user):
    return make_user('front1', Role.RECEPTIONIST)


@pytest.fixture
def technician(make_user):
    return make_user('tech1', Role.TECHNICIAN)


@pytest.fixture
def make_patient(db, admin_user):
    def _make(first_name='Mary', last_name='Johnson', **overrides):
        data = {
            'first_name': first_name,
            'last_name': last_name,
            'date_of_birth': date(1975, 3, 14),
            'gender': 'female',
            'phone': '555-0101',
            'email': 'mary@example.com',
            'address': {'street': '1 Elm St', 'city': 'Springfield', 'state': 'IL', 'zipCode': '62701',
                        'country': 'USA'},
            'emergency_contact': {'name': 'Alex Johnson', 'relationship': 'Spouse', 'phone': '555-0102'},
            'insurance': {'provider': 'Acme Health', 'policyNumber': 'POL-1', 'coverageType': 'primary',
                          'effectiveDate': '2024-01-01'},
            'ssn': '123-45-6789',
        }
        data.update(overrides)
        return patient_service.create_patient(data, admin_user.pk)
    return _make


@pytest.fixture
def patient(make_patient):
    return make_patient()


@pytest.fixture
def add_to_care_team(db):
    def _add(patient, user, role_on_team=''):
        return CareTeamMember.objects.create(patient=patient, user=user, role_on_team=role_on_team)
    return _add


@pytest.fixture
def client_for():
    def _client(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client
    return _client


@pytest.fixture
def patient_payload():
    return {
        'firstName': 'Jane',
        'lastName': 'Doe',
        'dateOfBirth': '1980-05-01',
        'gender': 'female',
        'ssn': '123-45-6789',
        'email': 'jane@example.com',
        'phone': '555-0199',
        'address': {'street': '9 Oak Ave', 'city': 'Springfield', 'state': 'IL', 'zipCode': '62701'},
        'emergencyContact': {'name': 'John Doe', 'relationship': 'Spouse', 'phone': '555-0198'},
        'insurance': {'provider': 'Acme Health', 'policyNumber': 'POL-77', 'effectiveDate': '2024-01-01'},
    }
