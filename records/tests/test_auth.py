import pytest
from django.urls import reverse
from rest_framework.test import APIClient

from records.models import AuditRecord
from records.roles import Role

pytestmark = pytest.mark.django_db

PASSWORD = 'P@ssw0rd-123'


def login(client, username, password=PASSWORD):
    return client.post(reverse('login_view'), {'username': username, 'password': password}, format='json')


def test_login_returns_tokens_and_permissions(physician):
    r = login(APIClient(), 'drsmith')
    assert r.status_code == 200
    assert r.data['access'] and r.data['refresh']
    assert r.data['user']['role'] == Role.PHYSICIAN
    assert 'patient.read' in r.data['permissions']
    audit = AuditRecord.objects.get(resource_type='Session')
    assert (audit.action, audit.actor_id) == ('Login', str(physician.pk))


def test_login_ignores_submitted_role(nurse):
    client = APIClient()
    r = client.post(reverse('login_view'), {'username': 'nurse1', 'password': PASSWORD, 'role': 'admin'},
                    format='json')
    assert r.status_code == 200
    assert r.data['user']['role'] == Role.NURSE
    nurse.refresh_from_db()
    assert nurse.role == Role.NURSE


def test_failed_login_is_audited(nurse):
    r = login(APIClient(), 'nurse1', 'wrong-password')
    assert r.status_code == 401
    assert r.data['error']['code'] == 'invalid_credentials'
    audit = AuditRecord.objects.get(resource_type='Session')
    assert audit.action == 'LoginFailed'
    assert audit.detail == 'Username: nurse1'
    assert audit.actor_id == ''


def test_login_requires_both_fields():
    r = APIClient().post(reverse('login_view'), {'username': 'x'}, format='json')
    assert r.status_code == 400


def test_bearer_token_reaches_patient_api(admin_user, patient):
    client = APIClient()
    access = login(client, 'admin1').data['access']
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {access}')
    r = client.get(reverse('patients_collection'))
    assert r.status_code == 200
    assert r.data['totalCount'] == 1


def test_token_is_rejected_after_role_change(physician, patient):
    client = APIClient()
    access = login(client, 'drsmith').data['access']
    physician.role = Role.NURSE
    physician.save(update_fields=['role'])
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {access}')
    r = client.delete(reverse('patient_item', kwargs={'pk': patient.pk}))
    assert r.status_code == 401
    patient.refresh_from_db()
    assert not patient.is_archived


def test_refresh_issues_new_access_token(nurse):
    client = APIClient()
    refresh = login(client, 'nurse1').data['refresh']
    r = client.post(reverse('refresh_view'), {'refresh': refresh}, format='json')
    assert r.status_code == 200
    assert r.data['access']


def test_refresh_with_garbage_is_401():
    r = APIClient().post(reverse('refresh_view'), {'refresh': 'not-a-token'}, format='json')
    assert r.status_code == 401


def test_logout_blacklists_refresh_token(nurse):
    client = APIClient()
    tokens = login(client, 'nurse1').data
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
    r = client.post(reverse('logout_view'), {'refresh': tokens['refresh']}, format='json')
    assert r.status_code == 200
    assert r.data['blacklisted'] == 1
    assert AuditRecord.objects.filter(resource_type='Session', action='Logout').count() == 1

    again = APIClient().post(reverse('refresh_view'), {'refresh': tokens['refresh']}, format='json')
    assert again.status_code == 401


def test_logout_without_token_revokes_all(nurse):
    client = APIClient()
    first = login(client, 'nurse1').data
    login(client, 'nurse1')
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {first['access']}")
    r = client.post(reverse('logout_view'), {}, format='json')
    assert r.status_code == 200
    assert r.data['blacklisted'] == 2


def test_logout_rejects_someone_elses_token(nurse, technician):
    client = APIClient()
    mine = login(client, 'nurse1').data
    theirs = login(client, 'tech1').data
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {mine['access']}")
    r = client.post(reverse('logout_view'), {'refresh': theirs['refresh']}, format='json')
    assert r.status_code == 400
