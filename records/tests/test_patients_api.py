import logging
import uuid
from datetime import date, timedelta
from unittest import mock

import pytest
from django.db import DatabaseError
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APIClient

from records.models import AuditRecord, MedicalHistoryEntry, Patient, PatientStatus, VitalSigns
from records.serializers.patient import _age

pytestmark = pytest.mark.django_db

DENIED = "You do not have permission to access this patient's information"


def patient_audits(action=None):
    qs = AuditRecord.objects.filter(resource_type='Patient')
    if action:
        qs = qs.filter(action=action)
    return qs


def item_url(pk):
    return reverse('patient_item', kwargs={'pk': pk})


# ---------------------------------------------------------------------
# List
# ---------------------------------------------------------------------
def test_list_requires_authentication(patient):
    resp = APIClient().get(reverse('patients_collection'))
    assert resp.status_code == 401
    assert resp.data['ok'] is False


def test_list_is_role_gated(client_for, technician, patient):
    resp = client_for(technician).get(reverse('patients_collection'))
    assert resp.status_code == 403
    assert not patient_audits().exists()


def test_list_clamps_paging_and_audits_once(client_for, admin_user, patient):
    resp = client_for(admin_user).get(reverse('patients_collection'), {'page': 0, 'pageSize': 500})
    assert resp.status_code == 200
    assert resp.data['currentPage'] == 1
    assert resp.data['pageSize'] == 10
    assert resp.data['totalCount'] == 1
    assert resp.data['totalPages'] == 1
    assert resp.data['patients'][0]['medicalRecordNumber'] == patient.medical_record_number
    audit = patient_audits().get()
    assert audit.action == 'List'
    assert audit.actor_id == str(admin_user.pk)
    assert audit.detail == 'Page: 1, PageSize: 10, Search: '


def test_list_audit_detail_includes_search(client_for, admin_user, patient):
    client_for(admin_user).get(reverse('patients_collection'), {'search': 'john', 'page': 2, 'pageSize': 5})
    assert patient_audits('List').get().detail == 'Page: 2, PageSize: 5, Search: john'


def test_list_page_past_the_end_is_empty(client_for, admin_user, patient):
    huge = '99999999999999999999'
    resp = client_for(admin_user).get(reverse('patients_collection'), {'page': huge})
    assert resp.status_code == 200
    assert resp.data['patients'] == []
    assert resp.data['totalCount'] == 1
    assert resp.data['currentPage'] == int(huge)
    assert patient_audits('List').get().detail == f'Page: {huge}, PageSize: 10, Search: '


def test_receptionist_lists_only_care_team_patients(client_for, receptionist, make_patient, add_to_care_team):
    mine = make_patient()
    make_patient(first_name='Robert', last_name='Williams')
    add_to_care_team(mine, receptionist)
    resp = client_for(receptionist).get(reverse('patients_collection'))
    assert resp.status_code == 200
    assert [p['id'] for p in resp.data['patients']] == [str(mine.pk)]
    assert resp.data['totalCount'] == 1


# ---------------------------------------------------------------------
# Detail
# ---------------------------------------------------------------------
def test_get_patient_returns_detail_with_masked_ssn(client_for, physician, patient):
    resp = client_for(physician).get(item_url(patient.pk))
    assert resp.status_code == 200
    assert resp.data['ssn'] == '***-**-6789'
    assert resp.data['fullName'] == 'Mary Johnson'
    assert resp.data['allergies'] == []
    assert resp['ETag'] == '"1"'
    audit = patient_audits().get()
    assert (audit.action, audit.detail) == ('View', f'PatientId: {patient.pk}')


def test_get_patient_denied_never_fetches_or_audits(client_for, nurse, patient, caplog):
    caplog.set_level(logging.WARNING, logger='records.decorators')
    with mock.patch('records.services.patients.get_patient_detail') as fetch, \
            mock.patch('records.decorators.log_access') as audit_write:
        resp = client_for(nurse).get(item_url(patient.pk))
    assert resp.status_code == 403
    assert resp.data['error']['message'] == DENIED
    fetch.assert_not_called()
    audit_write.assert_not_called()
    assert any('Access denied' in r.getMessage() for r in caplog.records)


def test_get_patient_allowed_for_care_team_technician(client_for, technician, patient, add_to_care_team):
    add_to_care_team(patient, technician)
    assert client_for(technician).get(item_url(patient.pk)).status_code == 200


def test_get_unknown_patient_is_404(client_for, admin_user):
    missing = uuid.uuid4()
    resp = client_for(admin_user).get(item_url(missing))
    assert resp.status_code == 404
    assert resp.data['error']['message'] == f'Patient with ID {missing} not found'
    assert not patient_audits().exists()


def test_malformed_id_does_not_route(client_for, admin_user):
    resp = client_for(admin_user).get('/api/v1/patients/not-a-uuid')
    assert resp.status_code == 404


def test_unexpected_error_is_generic(client_for, admin_user, patient):
    with mock.patch('records.services.patients.get_patient_detail', side_effect=RuntimeError('John Doe 123-45')):
        resp = client_for(admin_user).get(item_url(patient.pk))
    assert resp.status_code == 500
    assert resp.data['error']['message'] == 'An error occurred while retrieving the patient'
    assert b'John Doe' not in resp.content
    assert not patient_audits().exists()


def test_read_fails_when_audit_trail_is_down(client_for, admin_user, patient, settings):
    settings.AUDIT_RETRY_DELAY = 0
    with mock.patch('records.services.audit._write', side_effect=DatabaseError('down')) as write:
        resp = client_for(admin_user).get(item_url(patient.pk))
    assert resp.status_code == 503
    assert resp.data['error']['code'] == 'audit_unavailable'
    assert write.call_count == 2


# ---------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------
def test_create_patient(client_for, receptionist, patient_payload):
    resp = client_for(receptionist).post(reverse('patients_collection'), patient_payload, format='json')
    assert resp.status_code == 201
    created = Patient.objects.get()
    assert resp.data['id'] == str(created.pk)
    assert resp.data['medicalRecordNumber'] == created.medical_record_number
    assert resp.data['ssn'] == '***-**-6789'
    assert resp.data['status'] == PatientStatus.ACTIVE
    assert resp['Location'] == item_url(created.pk)
    assert created.created_by == str(receptionist.pk)
    audit = patient_audits().get()
    assert audit.action == 'Create'
    assert audit.detail == f'PatientId: {created.pk}, MRN: {created.medical_record_number}'


def test_creator_can_read_the_record_they_registered(client_for, nurse, patient_payload):
    client = client_for(nurse)
    resp = client.post(reverse('patients_collection'), patient_payload, format='json')
    assert resp.status_code == 201
    created = Patient.objects.get()
    assert created.care_team.filter(user=nurse).exists()
    follow = client.get(resp['Location'])
    assert follow.status_code == 200
    assert follow.data['id'] == str(created.pk)


def test_create_strips_markup(client_for, admin_user, patient_payload):
    patient_payload['firstName'] = '<script>alert(1)</script>Jane'
    client_for(admin_user).post(reverse('patients_collection'), patient_payload, format='json')
    assert Patient.objects.get().first_name == 'alert(1)Jane'


def test_create_reports_every_validation_error(client_for, admin_user):
    resp = client_for(admin_user).post(reverse('patients_collection'), {}, format='json')
    assert resp.status_code == 400
    assert resp.data['errors'] == [
        'First name is required',
        'Last name is required',
        'Date of birth is required',
        'Gender is required',
        'Address is required',
        'Emergency contact is required',
        'Insurance information is required',
    ]
    assert not Patient.objects.exists()
    assert not patient_audits().exists()


def test_create_rejects_future_birth_date(client_for, admin_user, patient_payload):
    patient_payload['dateOfBirth'] = (timezone.localdate() + timedelta(days=3)).isoformat()
    resp = client_for(admin_user).post(reverse('patients_collection'), patient_payload, format='json')
    assert resp.status_code == 400
    assert 'Date of birth cannot be in the future' in resp.data['errors']


def test_create_rejects_malformed_shape(client_for, admin_user, patient_payload):
    patient_payload['gender'] = 'unknown'
    resp = client_for(admin_user).post(reverse('patients_collection'), patient_payload, format='json')
    assert resp.status_code == 400
    assert resp.data['error']['code'] == 'validation_error'
    assert not Patient.objects.exists()


def test_create_rolls_back_when_audit_write_fails(client_for, admin_user, patient_payload):
    with mock.patch('records.services.audit._write', side_effect=DatabaseError('down')) as write:
        resp = client_for(admin_user).post(reverse('patients_collection'), patient_payload, format='json')
    assert resp.status_code == 503
    assert write.call_count == 1
    assert not Patient.objects.exists()


def test_create_is_role_gated(client_for, technician, patient_payload):
    resp = client_for(technician).post(reverse('patients_collection'), patient_payload, format='json')
    assert resp.status_code == 403
    assert not Patient.objects.exists()


# ---------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------
def test_update_is_partial_and_audited(client_for, nurse, patient, add_to_care_team):
    add_to_care_team(patient, nurse)
    resp = client_for(nurse).put(item_url(patient.pk), {'phone': '555-4242'}, format='json')
    assert resp.status_code == 200
    assert resp.data['phone'] == '555-4242'
    assert resp.data['firstName'] == 'Mary'
    assert resp.data['version'] == 2
    patient.refresh_from_db()
    assert patient.last_modified_by == str(nurse.pk)
    audit = patient_audits().get()
    assert (audit.action, audit.detail) == ('Update', f'PatientId: {patient.pk}')


def test_update_denied_outside_care_team(client_for, nurse, patient):
    with mock.patch('records.services.patients.update_patient') as update:
        resp = client_for(nurse).put(item_url(patient.pk), {'phone': '1'}, format='json')
    assert resp.status_code == 403
    assert resp.data['error']['message'] == "You do not have permission to update this patient's information"
    update.assert_not_called()
    assert not patient_audits().exists()


def test_update_with_stale_version_conflicts(client_for, physician, patient):
    resp = client_for(physician).put(item_url(patient.pk), {'phone': '1', 'version': 4}, format='json')
    assert resp.status_code == 409
    assert resp.data['currentVersion'] == 1
    patient.refresh_from_db()
    assert patient.phone == '555-0101'
    assert not patient_audits().exists()


def test_update_honours_if_match(client_for, physician, patient):
    client = client_for(physician)
    stale = client.put(item_url(patient.pk), {'phone': '1'}, format='json', HTTP_IF_MATCH='"9"')
    assert stale.status_code == 409
    fresh = client.put(item_url(patient.pk), {'phone': '1'}, format='json', HTTP_IF_MATCH='"1"')
    assert fresh.status_code == 200
    assert fresh['ETag'] == '"2"'


def test_update_unknown_patient_is_404(client_for, admin_user):
    resp = client_for(admin_user).put(item_url(uuid.uuid4()), {'phone': '1'}, format='json')
    assert resp.status_code == 404


def test_update_cannot_archive_through_status(client_for, admin_user, patient):
    resp = client_for(admin_user).put(item_url(patient.pk), {'status': 'archived'}, format='json')
    assert resp.status_code == 400


# ---------------------------------------------------------------------
# Archive
# ---------------------------------------------------------------------
def test_archive_retains_record(client_for, physician, patient):
    resp = client_for(physician).delete(item_url(patient.pk))
    assert resp.status_code == 204
    patient.refresh_from_db()
    assert patient.status == PatientStatus.ARCHIVED
    assert patient.archived_by == str(physician.pk)
    audit = patient_audits().get()
    assert (audit.action, audit.detail) == ('Archive', f'PatientId: {patient.pk}')


def test_archive_is_role_gated(client_for, nurse, patient, add_to_care_team):
    add_to_care_team(patient, nurse)
    resp = client_for(nurse).delete(item_url(patient.pk))
    assert resp.status_code == 403
    patient.refresh_from_db()
    assert patient.status == PatientStatus.ACTIVE


def test_archive_unknown_patient_is_404(client_for, admin_user):
    missing = uuid.uuid4()
    resp = client_for(admin_user).delete(item_url(missing))
    assert resp.status_code == 404
    assert resp.data['error']['message'] == f'Patient with ID {missing} not found'


# ---------------------------------------------------------------------
# Sub-resources
# ---------------------------------------------------------------------
def test_medical_history(client_for, nurse, patient, add_to_care_team):
    add_to_care_team(patient, nurse)
    MedicalHistoryEntry.objects.create(patient=patient, condition='Asthma', diagnosis_date=date(2021, 6, 1))
    MedicalHistoryEntry.objects.create(patient=patient, condition='Hypertension', diagnosis_date=date(2019, 2, 1),
                                       icd10_code='I10')
    resp = client_for(nurse).get(reverse('patient_medical_history', kwargs={'pk': patient.pk}))
    assert resp.status_code == 200
    assert [h['condition'] for h in resp.data] == ['Hypertension', 'Asthma']
    assert resp.data[0]['icd10Code'] == 'I10'
    audit = patient_audits().get()
    assert (audit.action, audit.detail) == ('ViewMedicalHistory', f'PatientId: {patient.pk}')


def test_medical_history_is_role_gated(client_for, receptionist, patient, add_to_care_team):
    add_to_care_team(patient, receptionist)
    resp = client_for(receptionist).get(reverse('patient_medical_history', kwargs={'pk': patient.pk}))
    assert resp.status_code == 403


def test_medical_history_denied_message(client_for, nurse, patient):
    resp = client_for(nurse).get(reverse('patient_medical_history', kwargs={'pk': patient.pk}))
    assert resp.status_code == 403
    assert resp.data['error']['message'] == "You do not have permission to access this patient's medical history"


def test_vital_signs_default_window(client_for, physician, patient):
    now = timezone.now()
    VitalSigns.objects.create(patient=patient, recorded_at=now - timedelta(days=40), recorded_by='n')
    older = VitalSigns.objects.create(patient=patient, recorded_at=now - timedelta(days=10), recorded_by='n',
                                      systolic=120, diastolic=80)
    newer = VitalSigns.objects.create(patient=patient, recorded_at=now - timedelta(days=1), recorded_by='n')
    resp = client_for(physician).get(reverse('patient_vital_signs', kwargs={'pk': patient.pk}))
    assert resp.status_code == 200
    assert [v['id'] for v in resp.data] == [newer.pk, older.pk]
    assert resp.data[1]['bloodPressure'] == {'systolic': 120, 'diastolic': 80}
    assert resp.data[0]['bloodPressure'] is None
    audit = patient_audits().get()
    assert (audit.action, audit.detail) == ('ViewVitalSigns', f'PatientId: {patient.pk}, Days: 30')


@pytest.mark.parametrize('raw,expected', [('7', 7), ('0', 30), ('-2', 30), ('abc', 30)])
def test_vital_signs_days_parameter(client_for, physician, patient, raw, expected):
    client_for(physician).get(reverse('patient_vital_signs', kwargs={'pk': patient.pk}), {'days': raw})
    assert patient_audits().get().detail == f'PatientId: {patient.pk}, Days: {expected}'


def test_vital_signs_for_care_team_technician(client_for, technician, patient, add_to_care_team):
    add_to_care_team(patient, technician)
    resp = client_for(technician).get(reverse('patient_vital_signs', kwargs={'pk': patient.pk}))
    assert resp.status_code == 200


def test_vital_signs_unknown_patient(client_for, admin_user):
    resp = client_for(admin_user).get(reverse('patient_vital_signs', kwargs={'pk': uuid.uuid4()}))
    assert resp.status_code == 404
    assert not patient_audits().exists()


# ---------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------
def test_search_is_scoped_and_audited(client_for, receptionist, make_patient, add_to_care_team):
    mine = make_patient(first_name='Mary', last_name='Johnson')
    make_patient(first_name='Mary', last_name='Adams')
    add_to_care_team(mine, receptionist)
    resp = client_for(receptionist).post(reverse('patient_search'), {'name': 'Mary'}, format='json')
    assert resp.status_code == 200
    assert [r['id'] for r in resp.data] == [str(mine.pk)]
    audit = patient_audits().get()
    assert audit.action == 'Search'
    assert audit.detail == 'Criteria: {"name": "Mary"}'


def test_search_is_role_gated(client_for, technician):
    resp = client_for(technician).post(reverse('patient_search'), {'name': 'Mary'}, format='json')
    assert resp.status_code == 403
    assert not patient_audits().exists()


def test_age_follows_the_local_calendar_day():
    with mock.patch('django.utils.timezone.localdate', return_value=date(2024, 3, 13)):
        assert _age(date(1975, 3, 14)) == 48
    with mock.patch('django.utils.timezone.localdate', return_value=date(2024, 3, 14)):
        assert _age(date(1975, 3, 14)) == 49
