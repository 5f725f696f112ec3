"""
Management command to populate a development database with demo data.

Creates one account per role (password ``--password``, default
``Demo@12345``) and a handful of patients with allergies, medications,
medical history, vital signs and appointments.  Running it again leaves
existing accounts alone and only adds patients when none exist.
"""
import random
from datetime import date, timedelta
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from records.models import (
    Allergy,
    Appointment,
    CareTeamMember,
    MedicalHistoryEntry,
    Medication,
    Patient,
    User,
    VitalSigns,
)
from records.roles import Role
from records.services import patients as patient_service

DEMO_USERS = [
    ('admin1', Role.ADMIN, 'Ada', 'Admin'),
    ('drsmith', Role.PHYSICIAN, 'John', 'Smith'),
    ('nurse1', Role.NURSE, 'Nina', 'Ortiz'),
    ('pharm1', Role.PHARMACIST, 'Paul', 'Reed'),
    ('front1', Role.RECEPTIONIST, 'Rita', 'Lane'),
    ('tech1', Role.TECHNICIAN, 'Tom', 'Nguyen'),
    ('patient1', Role.PATIENT, 'Mary', 'Johnson'),
]

DEMO_PATIENTS = [
    ('Mary', 'Johnson', date(1975, 3, 14), 'female', 'O+'),
    ('Robert', 'Williams', date(1962, 11, 2), 'male', 'A-'),
    ('Linda', 'Garcia', date(1990, 7, 23), 'female', 'B+'),
    ('James', 'Brown', date(1948, 1, 30), 'male', 'AB+'),
]

CONDITIONS = [
    ('Hypertension', 'I10', 'chronic'),
    ('Type 2 diabetes mellitus', 'E11.9', 'under_treatment'),
    ('Acute bronchitis', 'J20.9', 'resolved'),
]


class Command(BaseCommand):
    help = 'Create demo users for every role and sample patients'

    def add_arguments(self, parser):
        parser.add_argument('--password', default='Demo@12345')

    def handle(self, *args, **opts):
        users = {}
        for username, role, first, last in DEMO_USERS:
            user, created = User.objects.get_or_create(
                username=username,
                defaults={'role': role, 'first_name': first, 'last_name': last, 'is_active': True},
            )
            if created:
                user.set_password(opts['password'])
                user.is_staff = role == Role.ADMIN
                user.save()
            users[role] = user
            self.stdout.write(self.style.SUCCESS(f"ok: {username} ({role})"))

        if Patient.objects.exists():
            self.stdout.write('Patients already present, skipping.')
            return

        with transaction.atomic():
            for index, (first, last, dob, gender, blood) in enumerate(DEMO_PATIENTS):
                patient = self._create_patient(first, last, dob, gender, blood, users)
                if index == 0:
                    patient.account = users[Role.PATIENT]
                    patient.save(update_fields=['account'])
                self._add_clinical_data(patient, users)
        self.stdout.write(self.style.SUCCESS(f"Created {len(DEMO_PATIENTS)} demo patients."))

    def _create_patient(self, first, last, dob, gender, blood, users):
        data = {
            'first_name': first,
            'last_name': last,
            'date_of_birth': dob,
            'gender': gender,
            'blood_type': blood,
            'phone': f'555-01{random.randint(10, 99)}',
            'email': f'{first.lower()}.{last.lower()}@example.com',
            'address': {'street': '100 Main St', 'city': 'Springfield', 'state': 'IL',
                        'zipCode': '62701', 'country': 'USA'},
            'emergency_contact': {'name': f'Alex {last}', 'relationship': 'Spouse', 'phone': '555-0100'},
            'insurance': {'provider': 'Acme Health', 'policyNumber': f'POL-{random.randint(10000, 99999)}',
                          'coverageType': 'primary', 'effectiveDate': '2024-01-01'},
            'assigned_physician': users[Role.PHYSICIAN],
            'ssn': f'123-45-{random.randint(1000, 9999)}',
        }
        actor = users[Role.ADMIN].pk
        patient = patient_service.create_patient(data, actor)
        CareTeamMember.objects.create(patient=patient, user=users[Role.NURSE], role_on_team='Primary nurse')
        CareTeamMember.objects.create(patient=patient, user=users[Role.RECEPTIONIST], role_on_team='Front desk')
        CareTeamMember.objects.create(patient=patient, user=users[Role.TECHNICIAN], role_on_team='Lab')
        return patient

    def _add_clinical_data(self, patient, users):
        physician = users[Role.PHYSICIAN]
        now = timezone.now()
        Allergy.objects.create(patient=patient, allergen='Penicillin', severity='moderate', reaction='Hives')
        Medication.objects.create(
            patient=patient, name='Lisinopril', dosage='10 mg', frequency='Once daily',
            prescribed_by=physician.get_full_name(), prescribed_date=date.today() - timedelta(days=90),
            start_date=date.today() - timedelta(days=90),
        )
        for offset, (condition, code, status) in enumerate(CONDITIONS):
            MedicalHistoryEntry.objects.create(
                patient=patient, condition=condition, icd10_code=code, status=status,
                diagnosis_date=date.today() - timedelta(days=365 * (len(CONDITIONS) - offset)),
                treating_physician=physician.get_full_name(),
            )
        for days_ago in (1, 7, 20, 45):
            VitalSigns.objects.create(
                patient=patient, recorded_at=now - timedelta(days=days_ago), recorded_by=users[Role.NURSE].username,
                temperature=Decimal('98.6'), systolic=random.randint(110, 140), diastolic=random.randint(70, 90),
                heart_rate=random.randint(60, 90), respiratory_rate=16, oxygen_saturation=Decimal('98.0'),
            )
        Appointment.objects.create(
            patient=patient, physician=physician, scheduled_date=now + timedelta(days=14),
            type='follow_up', reason='Blood pressure review',
        )
