"""
Database models for the PatientCare backend.

These models capture clinical staff accounts, patient records and the
clinical data hanging off a patient (allergies, medications, medical
history, vital signs and appointments) together with the append-only
audit trail.  JSON payload keys for embedded structures (address,
emergency contact, insurance) use the camelCase names the client sends.
"""
from __future__ import annotations

import uuid

from django.contrib.auth.models import AbstractUser
from django.db import models

from .roles import Role


class User(AbstractUser):
    """Staff or patient account.

    ``role`` is one of :class:`records.roles.Role` and drives both the
    endpoint allow-lists and the per-patient access strategy.
    """
    role = models.CharField(max_length=16, choices=Role.choices, default=Role.PATIENT, db_index=True)
    department = models.CharField(max_length=128, blank=True)
    license_number = models.CharField(max_length=64, blank=True)
    mfa_enabled = models.BooleanField(default=False)

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class PatientStatus(models.TextChoices):
    ACTIVE = 'active', 'Active'
    INACTIVE = 'inactive', 'Inactive'
    DECEASED = 'deceased', 'Deceased'
    TRANSFERRED = 'transferred', 'Transferred'
    ARCHIVED = 'archived', 'Archived'


class Gender(models.TextChoices):
    MALE = 'male', 'Male'
    FEMALE = 'female', 'Female'
    OTHER = 'other', 'Other'
    PREFER_NOT_TO_SAY = 'prefer_not_to_say', 'Prefer not to say'


class BloodType(models.TextChoices):
    A_POSITIVE = 'A+', 'A+'
    A_NEGATIVE = 'A-', 'A-'
    B_POSITIVE = 'B+', 'B+'
    B_NEGATIVE = 'B-', 'B-'
    AB_POSITIVE = 'AB+', 'AB+'
    AB_NEGATIVE = 'AB-', 'AB-'
    O_POSITIVE = 'O+', 'O+'
    O_NEGATIVE = 'O-', 'O-'


class Patient(models.Model):
    """A patient record.

    The medical record number is generated on creation and never changes.
    Records are never deleted; archiving moves ``status`` to
    :attr:`PatientStatus.ARCHIVED`.  ``version`` increases on every update
    and is used to detect concurrent edits.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    medical_record_number = models.CharField(max_length=32, unique=True, editable=False)

    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, db_index=True)
    date_of_birth = models.DateField()
    gender = models.CharField(max_length=20, choices=Gender.choices)
    # AES-GCM token, see records.services.protection
    ssn_encrypted = models.TextField(blank=True)
    ssn_last4 = models.CharField(max_length=4, blank=True)

    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=32, blank=True, db_index=True)
    address = models.JSONField(default=dict)
    emergency_contact = models.JSONField(default=dict)

    blood_type = models.CharField(max_length=3, choices=BloodType.choices, blank=True)
    insurance = models.JSONField(default=dict)

    status = models.CharField(
        max_length=16, choices=PatientStatus.choices, default=PatientStatus.ACTIVE, db_index=True
    )
    assigned_physician = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='assigned_patients'
    )
    # Portal account of the patient themself, if any
    account = models.OneToOneField(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='patient_record'
    )
    last_visit = models.DateTimeField(null=True, blank=True)
    next_appointment = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    created_by = models.CharField(max_length=64)
    last_modified_by = models.CharField(max_length=64)
    archived_at = models.DateTimeField(null=True, blank=True)
    archived_by = models.CharField(max_length=64, blank=True)
    version = models.PositiveIntegerField(default=1)

    class Meta:
        ordering = ['last_name', 'first_name']
        indexes = [
            models.Index(fields=['last_name', 'first_name'], name='patient_name_idx'),
            models.Index(fields=['assigned_physician', 'status'], name='patient_physician_status_idx'),
        ]

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_archived(self) -> bool:
        return self.status == PatientStatus.ARCHIVED

    def __str__(self) -> str:
        return f"{self.full_name} ({self.medical_record_number})"


class CareTeamMember(models.Model):
    """Links a staff user to a patient they are caring for."""
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='care_team')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='care_assignments')
    role_on_team = models.CharField(max_length=64, blank=True)
    added_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = [('patient', 'user')]

    def __str__(self) -> str:
        return f"{self.user} on care team of {self.patient_id}"


class Allergy(models.Model):
    SEVERITY_CHOICES = [
        ('mild', 'Mild'),
        ('moderate', 'Moderate'),
        ('severe', 'Severe'),
        ('life_threatening', 'Life threatening'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='allergies')
    allergen = models.CharField(max_length=128)
    severity = models.CharField(max_length=20, choices=SEVERITY_CHOICES)
    reaction = models.CharField(max_length=255, blank=True)
    onset_date = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        verbose_name_plural = 'allergies'

    def __str__(self) -> str:
        return f"{self.allergen} ({self.severity})"


class Medication(models.Model):
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='medications')
    name = models.CharField(max_length=128)
    dosage = models.CharField(max_length=64)
    frequency = models.CharField(max_length=64)
    prescribed_by = models.CharField(max_length=128)
    prescribed_date = models.DateField()
    start_date = models.DateField()
    end_date = models.DateField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    notes = models.TextField(blank=True)

    def __str__(self) -> str:
        return f"{self.name} {self.dosage}"


class ConditionStatus(models.TextChoices):
    ACTIVE = 'active', 'Active'
    RESOLVED = 'resolved', 'Resolved'
    CHRONIC = 'chronic', 'Chronic'
    UNDER_TREATMENT = 'under_treatment', 'Under treatment'


class MedicalHistoryEntry(models.Model):
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='medical_history')
    condition = models.CharField(max_length=255)
    diagnosis_date = models.DateField()
    status = models.CharField(max_length=20, choices=ConditionStatus.choices, default=ConditionStatus.ACTIVE)
    treating_physician = models.CharField(max_length=128, blank=True)
    notes = models.TextField(blank=True)
    icd10_code = models.CharField(max_length=16, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = 'medical history entries'
        indexes = [models.Index(fields=['patient', 'diagnosis_date'], name='history_patient_dx_date_idx')]

    def __str__(self) -> str:
        return f"{self.condition} ({self.status})"


class VitalSigns(models.Model):
    """A measurement snapshot.  Rows are immutable once written."""
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='vital_signs')
    recorded_at = models.DateTimeField(db_index=True)
    recorded_by = models.CharField(max_length=64)
    temperature = models.DecimalField(max_digits=4, decimal_places=1, null=True, blank=True)  # Fahrenheit
    systolic = models.PositiveSmallIntegerField(null=True, blank=True)
    diastolic = models.PositiveSmallIntegerField(null=True, blank=True)
    heart_rate = models.PositiveSmallIntegerField(null=True, blank=True)
    respiratory_rate = models.PositiveSmallIntegerField(null=True, blank=True)
    oxygen_saturation = models.DecimalField(max_digits=4, decimal_places=1, null=True, blank=True)
    weight = models.DecimalField(max_digits=5, decimal_places=1, null=True, blank=True)  # pounds
    height = models.DecimalField(max_digits=4, decimal_places=1, null=True, blank=True)  # inches
    bmi = models.DecimalField(max_digits=4, decimal_places=1, null=True, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        verbose_name_plural = 'vital signs'
        indexes = [models.Index(fields=['patient', 'recorded_at'], name='vitals_patient_recorded_idx')]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError('vital signs are immutable once recorded')
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"Vitals for {self.patient_id} @ {self.recorded_at:%F %T}"


class Appointment(models.Model):
    TYPE_CHOICES = [
        ('routine_checkup', 'Routine checkup'),
        ('follow_up', 'Follow up'),
        ('emergency', 'Emergency'),
        ('consultation', 'Consultation'),
        ('procedure', 'Procedure'),
        ('telemedicine', 'Telemedicine'),
    ]
    STATUS_CHOICES = [
        ('scheduled', 'Scheduled'),
        ('confirmed', 'Confirmed'),
        ('in_progress', 'In progress'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
        ('no_show', 'No show'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='appointments')
    physician = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='appointments')
    scheduled_date = models.DateTimeField()
    duration = models.PositiveIntegerField(default=30)  # minutes
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='routine_checkup')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='scheduled')
    reason = models.CharField(max_length=255)
    notes = models.TextField(blank=True)
    room_number = models.CharField(max_length=16, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=['patient', 'scheduled_date'], name='appointment_patient_date_idx')]

    def __str__(self) -> str:
        return f"{self.type} for {self.patient_id} @ {self.scheduled_date:%F %T}"


class AuditRecord(models.Model):
    """Who touched which patient data, and when.

    Rows are write-once: updating or deleting one raises.
    """
    actor_id = models.CharField(max_length=64, db_index=True)
    resource_type = models.CharField(max_length=64)
    action = models.CharField(max_length=64)
    detail = models.TextField(blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-timestamp', '-id']
        indexes = [
            models.Index(fields=['resource_type', 'action', 'timestamp'], name='audit_resource_action_ts_idx'),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError('audit records are write-once')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError('audit records cannot be deleted')

    def __str__(self) -> str:
        return f"{self.action}:{self.actor_id}@{self.timestamp:%F %T}"
