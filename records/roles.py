"""
Roles and the permissions each role carries.

Roles are a closed set; permissions are a plain lookup table keyed by
role.  The administrator role maps to the ``ALL_PERMISSIONS`` sentinel
rather than to an explicit list so new permissions never have to be
added to it.
"""
from __future__ import annotations

from django.db import models


class Role(models.TextChoices):
    ADMIN = 'admin', 'Administrator'
    PHYSICIAN = 'physician', 'Physician'
    NURSE = 'nurse', 'Nurse'
    PHARMACIST = 'pharmacist', 'Pharmacist'
    RECEPTIONIST = 'receptionist', 'Receptionist'
    TECHNICIAN = 'technician', 'Technician'
    PATIENT = 'patient', 'Patient'


ALL_PERMISSIONS = '*'

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    Role.ADMIN: frozenset({ALL_PERMISSIONS}),
    Role.PHYSICIAN: frozenset({
        'patient.read', 'patient.write',
        'appointment.read', 'appointment.write',
        'medical_record.read', 'medical_record.write',
        'prescription.write',
    }),
    Role.NURSE: frozenset({
        'patient.read', 'patient.write',
        'appointment.read', 'appointment.write',
        'vital_signs.read', 'vital_signs.write',
        'medical_record.read',
    }),
    Role.PHARMACIST: frozenset({
        'patient.read',
        'prescription.read', 'prescription.write',
        'medication.read', 'medication.write',
    }),
    Role.RECEPTIONIST: frozenset({
        'patient.read', 'patient.write',
        'appointment.read', 'appointment.write',
        'insurance.read', 'insurance.write',
    }),
    Role.TECHNICIAN: frozenset({
        'patient.read',
        'vital_signs.read', 'vital_signs.write',
        'lab_results.read', 'lab_results.write',
    }),
    Role.PATIENT: frozenset({
        'patient.read_own',
        'appointment.read_own',
        'medical_record.read_own',
    }),
}

# Endpoint allow-lists.
PATIENT_LIST_ROLES = frozenset({Role.ADMIN, Role.PHYSICIAN, Role.NURSE, Role.RECEPTIONIST})
PATIENT_WRITE_ROLES = PATIENT_LIST_ROLES
PATIENT_VIEW_ROLES = PATIENT_LIST_ROLES | {Role.TECHNICIAN}
PATIENT_ARCHIVE_ROLES = frozenset({Role.ADMIN, Role.PHYSICIAN})
MEDICAL_HISTORY_ROLES = frozenset({Role.ADMIN, Role.PHYSICIAN, Role.NURSE})
VITAL_SIGNS_ROLES = frozenset({Role.ADMIN, Role.PHYSICIAN, Role.NURSE, Role.TECHNICIAN})
AUDIT_TRAIL_ROLES = frozenset({Role.ADMIN})


def permissions_for(role: str | None) -> frozenset[str]:
    return ROLE_PERMISSIONS.get(role or '', frozenset())


def has_permission(role: str | None, permission: str) -> bool:
    """Return True when ``role`` grants ``permission``.

    Unknown roles grant nothing; the administrator grants everything.
    """
    granted = permissions_for(role)
    return ALL_PERMISSIONS in granted or permission in granted
