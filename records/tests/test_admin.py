import pytest
from django.urls import reverse

from records.models import AuditRecord, Patient, PatientStatus, User
from records.services import patients as patient_service

pytestmark = pytest.mark.django_db


@pytest.fixture
def superuser_client(client):
    superuser = User.objects.create_superuser(username='root', email='root@example.com', password='P@ssw0rd-123')
    client.force_login(superuser)
    return client


def test_admin_cannot_change_patient(superuser_client, patient, admin_user):
    patient_service.archive_patient(patient.pk, admin_user.pk)
    url = reverse('admin:records_patient_change', args=[patient.pk])
    resp = superuser_client.post(url, {'status': PatientStatus.ACTIVE, 'first_name': 'Mary'})
    assert resp.status_code == 403
    patient.refresh_from_db()
    assert patient.status == PatientStatus.ARCHIVED
    assert patient.version == 2


def test_admin_cannot_add_patient(superuser_client):
    resp = superuser_client.post(reverse('admin:records_patient_add'), {
        'first_name': 'Jane', 'last_name': 'Doe', 'date_of_birth': '1980-05-01', 'gender': 'female',
    })
    assert resp.status_code == 403
    assert not Patient.objects.exists()
    assert not AuditRecord.objects.exists()
