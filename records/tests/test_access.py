import uuid
from unittest import mock

import pytest
from django.db import DatabaseError

from records.models import Patient
from records.roles import Role, has_permission, permissions_for
from records.services.access import CareTeamAccess, accessible_patients, can_access_patient

pytestmark = pytest.mark.django_db


def test_blanket_roles_access_any_patient(patient, admin_user, physician):
    assert can_access_patient(patient.pk, admin_user.pk, Role.ADMIN)
    assert can_access_patient(patient.pk, physician.pk, Role.PHYSICIAN)


def test_blanket_role_does_not_look_up_the_patient(admin_user):
    # not-found is the caller's job
    assert can_access_patient(uuid.uuid4(), admin_user.pk, Role.ADMIN)


def test_nurse_needs_care_team_membership(patient, nurse, add_to_care_team):
    assert not can_access_patient(patient.pk, nurse.pk, Role.NURSE)
    add_to_care_team(patient, nurse)
    assert can_access_patient(patient.pk, nurse.pk, Role.NURSE)


def test_assigned_physician_counts_for_care_team_roles(make_patient, make_user):
    resident = make_user('resident1', Role.NURSE)
    p = make_patient(assigned_physician=resident)
    assert can_access_patient(p.pk, resident.pk, Role.NURSE)


def test_patient_role_sees_only_own_record(make_patient, make_user):
    account = make_user('portal1', Role.PATIENT)
    own = make_patient()
    own.account = account
    own.save(update_fields=['account'])
    other = make_patient(first_name='Robert', last_name='Williams')
    assert can_access_patient(own.pk, account.pk, Role.PATIENT)
    assert not can_access_patient(other.pk, account.pk, Role.PATIENT)


@pytest.mark.parametrize('patient_id', ['not-a-uuid', '', None, 42])
def test_malformed_patient_id_is_denied(patient_id, nurse):
    assert can_access_patient(patient_id, nurse.pk, Role.NURSE) is False


def test_unknown_role_is_denied(patient, make_user):
    user = make_user('ghost', 'janitor')
    assert can_access_patient(patient.pk, user.pk, 'janitor') is False
    assert can_access_patient(patient.pk, user.pk, None) is False


def test_unknown_patient_is_denied_for_scoped_roles(nurse):
    assert can_access_patient(uuid.uuid4(), nurse.pk, Role.NURSE) is False


def test_database_error_denies(patient, nurse):
    with mock.patch.object(CareTeamAccess, 'permits', side_effect=DatabaseError('down')):
        assert can_access_patient(patient.pk, nurse.pk, Role.NURSE) is False


def test_queryset_scope_matches_direct_check(make_patient, receptionist, add_to_care_team):
    mine = make_patient()
    make_patient(first_name='Robert', last_name='Williams')
    add_to_care_team(mine, receptionist)
    visible = accessible_patients(Patient.objects.all(), receptionist.pk, Role.RECEPTIONIST)
    assert list(visible) == [mine]


def test_scope_for_unknown_role_is_empty(patient):
    assert not accessible_patients(Patient.objects.all(), '1', 'janitor').exists()


def test_admin_has_every_permission():
    assert has_permission(Role.ADMIN, 'anything.at_all')


def test_role_permission_table():
    assert has_permission(Role.NURSE, 'vital_signs.write')
    assert not has_permission(Role.RECEPTIONIST, 'medical_record.read')
    assert not has_permission(Role.PATIENT, 'patient.read')
    assert permissions_for('janitor') == frozenset()
