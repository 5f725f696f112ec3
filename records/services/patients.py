"""
Patient record operations.

This module is the only place that reads or writes patient data.  Missing
patients are reported as ``None`` and business-rule failures as a
:class:`ValidationResult`, so callers can pick the HTTP outcome without
catching exceptions.  The one exception raised on purpose is
:class:`records.exceptions.StalePatientError` for version-checked updates.
"""
from __future__ import annotations

import math
import secrets
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Prefetch, Q
from django.utils import timezone

from records.exceptions import StalePatientError
from records.models import (
    Allergy,
    Appointment,
    CareTeamMember,
    MedicalHistoryEntry,
    Medication,
    Patient,
    PatientStatus,
    VitalSigns,
)
from records.services.access import CareTeamAccess, accessible_patients, strategy_for
from records.services.protection import protect

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
RECENT_VITALS_LIMIT = 5
RECENT_APPOINTMENTS_LIMIT = 5
REGISTRAR_ROLE = 'Registered patient'

REQUIRED_ON_CREATE = (
    ('first_name', 'First name is required'),
    ('last_name', 'Last name is required'),
    ('date_of_birth', 'Date of birth is required'),
    ('gender', 'Gender is required'),
    ('address', 'Address is required'),
    ('emergency_contact', 'Emergency contact is required'),
    ('insurance', 'Insurance information is required'),
)

UPDATABLE_FIELDS = (
    'first_name', 'last_name', 'date_of_birth', 'gender', 'email', 'phone',
    'address', 'emergency_contact', 'insurance', 'blood_type', 'status',
    'assigned_physician', 'last_visit', 'next_appointment',
)


@dataclass
class ValidationResult:
    is_valid: bool = True
    errors: list[str] = field(default_factory=list)

    def add(self, message: str) -> None:
        self.is_valid = False
        self.errors.append(message)


@dataclass
class PagedResult:
    patients: list
    total_count: int
    page_size: int
    current_page: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size) if self.page_size else 0


def normalize_paging(page, page_size) -> tuple[int, int]:
    """Page below 1 becomes 1; a page size outside [1, 100] becomes 10."""
    try:
        page = int(page)
    except (TypeError, ValueError):
        page = 1
    try:
        page_size = int(page_size)
    except (TypeError, ValueError):
        page_size = DEFAULT_PAGE_SIZE
    if page < 1:
        page = 1
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        page_size = DEFAULT_PAGE_SIZE
    return page, page_size


def _physician_filter(value: str) -> Q:
    value = str(value).strip()
    if value.isdigit():
        return Q(assigned_physician_id=int(value)) | Q(assigned_physician__username=value)
    return Q(assigned_physician__username__iexact=value)


def list_patients(page, page_size, search: Optional[str] = None, status: Optional[str] = None,
                  assigned_physician: Optional[str] = None, *, actor_role, actor_id) -> PagedResult:
    page, page_size = normalize_paging(page, page_size)
    qs = accessible_patients(Patient.objects.select_related('assigned_physician'), actor_id, actor_role)
    if search:
        term = search.strip()
        qs = qs.filter(
            Q(first_name__icontains=term)
            | Q(last_name__icontains=term)
            | Q(medical_record_number__icontains=term)
        )
    if status:
        qs = qs.filter(status=status)
    if assigned_physician:
        qs = qs.filter(_physician_filter(assigned_physician))
    qs = qs.order_by('last_name', 'first_name', 'id')
    total = qs.count()
    start = (page - 1) * page_size
    # past the last page; the offset may not even fit the database integer
    patients = list(qs[start:start + page_size]) if start < total else []
    return PagedResult(
        patients=patients,
        total_count=total,
        page_size=page_size,
        current_page=page,
    )


def get_patient(patient_id) -> Optional[Patient]:
    return Patient.objects.select_related('assigned_physician').filter(pk=patient_id).first()


def get_patient_detail(patient_id) -> Optional[Patient]:
    """Fetch a patient with the clinical data the detail view shows."""
    patient = (
        Patient.objects.select_related('assigned_physician')
        .prefetch_related(
            Prefetch('allergies', queryset=Allergy.objects.filter(is_active=True), to_attr='active_allergies'),
            Prefetch('medications', queryset=Medication.objects.filter(is_active=True), to_attr='active_medications'),
        )
        .filter(pk=patient_id)
        .first()
    )
    if patient is None:
        return None
    patient.recent_vital_signs = list(
        VitalSigns.objects.filter(patient=patient).order_by('-recorded_at', '-id')[:RECENT_VITALS_LIMIT]
    )
    patient.recent_appointments = list(
        Appointment.objects.filter(patient=patient)
        .select_related('physician')
        .order_by('-scheduled_date')[:RECENT_APPOINTMENTS_LIMIT]
    )
    return patient


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (dict, list)):
        return not value
    return False


def validate_create(data: dict) -> ValidationResult:
    """Check the business rules for a new patient, collecting every violation."""
    result = ValidationResult()
    for key, message in REQUIRED_ON_CREATE:
        if _is_blank(data.get(key)):
            result.add(message)
    dob = data.get('date_of_birth')
    if dob and dob > timezone.localdate():
        result.add('Date of birth cannot be in the future')
    insurance = data.get('insurance') or {}
    effective, expiration = insurance.get('effectiveDate'), insurance.get('expirationDate')
    if effective and expiration and expiration < effective:
        result.add('Insurance expiration date must be after the effective date')
    return result


def generate_medical_record_number() -> str:
    return f"MRN-{timezone.localdate():%Y%m%d}-{secrets.token_hex(3).upper()}"


def _apply_ssn(patient: Patient, ssn: Optional[str]) -> None:
    digits = ''.join(ch for ch in (ssn or '') if ch.isdigit())
    patient.ssn_encrypted = protect(digits) if digits else ''
    patient.ssn_last4 = digits[-4:] if digits else ''


def create_patient(data: dict, actor_id, actor_role: Optional[str] = None) -> Patient:
    """Persist a new patient.  ``validate_create`` must have passed first.

    A creator whose role only reaches care-team patients joins the care
    team, so the record they just registered stays readable to them.
    """
    actor = str(actor_id)
    fields = {k: v for k, v in data.items() if k in UPDATABLE_FIELDS and k != 'status'}
    for _ in range(5):
        patient = Patient(
            medical_record_number=generate_medical_record_number(),
            status=PatientStatus.ACTIVE,
            created_by=actor,
            last_modified_by=actor,
            **fields,
        )
        _apply_ssn(patient, data.get('ssn'))
        try:
            with transaction.atomic():
                patient.save(force_insert=True)
                if isinstance(strategy_for(actor_role), CareTeamAccess):
                    CareTeamMember.objects.create(
                        patient=patient, user_id=int(actor_id), role_on_team=REGISTRAR_ROLE
                    )
            return patient
        except IntegrityError:
            if Patient.objects.filter(medical_record_number=patient.medical_record_number).exists():
                continue
            raise
    raise RuntimeError('could not allocate a unique medical record number')


def update_patient(patient_id, data: dict, actor_id, expected_version: Optional[int] = None) -> Optional[Patient]:
    """Apply a partial update; only keys present in ``data`` are written.

    The row is locked for the duration of the update.  When
    ``expected_version`` is given and the stored version differs,
    :class:`StalePatientError` is raised and nothing is written.
    """
    with transaction.atomic():
        patient = Patient.objects.select_for_update().filter(pk=patient_id).first()
        if patient is None:
            return None
        if expected_version is not None and expected_version != patient.version:
            raise StalePatientError(patient.pk, expected_version, patient.version)
        for key in UPDATABLE_FIELDS:
            if key not in data:
                continue
            if key == 'status' and patient.is_archived:
                # archived is terminal
                continue
            setattr(patient, key, data[key])
        if 'ssn' in data:
            _apply_ssn(patient, data['ssn'])
        patient.last_modified_by = str(actor_id)
        patient.version += 1
        patient.save()
    return patient


def archive_patient(patient_id, actor_id) -> Optional[Patient]:
    """Move the patient to the archived status; the record itself is kept."""
    with transaction.atomic():
        patient = Patient.objects.select_for_update().filter(pk=patient_id).first()
        if patient is None:
            return None
        if not patient.is_archived:
            patient.status = PatientStatus.ARCHIVED
            patient.archived_at = timezone.now()
            patient.archived_by = str(actor_id)
            patient.last_modified_by = str(actor_id)
            patient.version += 1
            patient.save()
    return patient


def get_medical_history(patient_id) -> list[MedicalHistoryEntry]:
    return list(
        MedicalHistoryEntry.objects.filter(patient_id=patient_id).order_by('diagnosis_date', 'id')
    )


def get_vital_signs(patient_id, days: int) -> list[VitalSigns]:
    """Vital signs recorded in the trailing ``days`` days, newest first."""
    since = timezone.now() - timedelta(days=days)
    return list(
        VitalSigns.objects.filter(patient_id=patient_id, recorded_at__gte=since).order_by('-recorded_at', '-id')
    )


def search_patients(criteria: dict, actor_role, actor_id) -> list[Patient]:
    qs = accessible_patients(Patient.objects.select_related('assigned_physician'), actor_id, actor_role)
    name = (criteria.get('name') or '').strip()
    for token in name.split():
        qs = qs.filter(Q(first_name__icontains=token) | Q(last_name__icontains=token))
    if criteria.get('medical_record_number'):
        qs = qs.filter(medical_record_number__iexact=criteria['medical_record_number'].strip())
    if criteria.get('date_of_birth'):
        qs = qs.filter(date_of_birth=criteria['date_of_birth'])
    if criteria.get('phone'):
        qs = qs.filter(phone__icontains=criteria['phone'].strip())
    if criteria.get('assigned_physician'):
        qs = qs.filter(_physician_filter(criteria['assigned_physician']))
    if criteria.get('status'):
        qs = qs.filter(status=criteria['status'])
    return list(qs.order_by('last_name', 'first_name', 'id')[:settings.PATIENT_SEARCH_LIMIT])
