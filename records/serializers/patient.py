import re
from datetime import date

import bleach
from django.utils import timezone
from rest_framework import serializers

from records.models import BloodType, Gender, Patient, PatientStatus, User
from records.roles import Role
from records.services.protection import mask_ssn

SSN_RE = re.compile(r'^\d{3}-?\d{2}-?\d{4}$')

# Statuses a client may set directly; archiving goes through DELETE.
SETTABLE_STATUSES = [c for c in PatientStatus.choices if c[0] != PatientStatus.ARCHIVED]

# Model columns that are NOT NULL; an explicit null in the payload is treated as "absent".
NON_NULLABLE = (
    'first_name', 'last_name', 'date_of_birth', 'gender', 'email', 'phone',
    'address', 'emergency_contact', 'insurance', 'blood_type', 'status', 'ssn',
)


class CleanCharField(serializers.CharField):
    """CharField that strips markup from the submitted text."""

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        return bleach.clean(value, tags=set(), strip=True).strip()


class AddressSerializer(serializers.Serializer):
    street = CleanCharField(max_length=200)
    city = CleanCharField(max_length=100)
    state = CleanCharField(max_length=100)
    zipCode = CleanCharField(max_length=20)
    country = CleanCharField(max_length=100, required=False, default='USA')


class EmergencyContactSerializer(serializers.Serializer):
    name = CleanCharField(max_length=200)
    relationship = CleanCharField(max_length=100)
    phone = CleanCharField(max_length=32)
    email = serializers.EmailField(required=False, allow_blank=True)


class InsuranceSerializer(serializers.Serializer):
    COVERAGE_CHOICES = ['primary', 'secondary', 'tertiary']

    provider = CleanCharField(max_length=200)
    policyNumber = CleanCharField(max_length=64)
    groupNumber = CleanCharField(max_length=64, required=False, allow_blank=True)
    coverageType = serializers.ChoiceField(choices=COVERAGE_CHOICES, default='primary')
    effectiveDate = serializers.DateField()
    expirationDate = serializers.DateField(required=False, allow_null=True)
    copay = serializers.FloatField(required=False, allow_null=True, min_value=0)
    deductible = serializers.FloatField(required=False, allow_null=True, min_value=0)

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        # stored in a JSON column
        for key in ('effectiveDate', 'expirationDate'):
            if isinstance(value.get(key), date):
                value[key] = value[key].isoformat()
        return dict(value)


class PatientInputSerializer(serializers.Serializer):
    """Create and update payload.

    Every field is optional at this level; the required-field rules for a
    new patient live in ``records.services.patients.validate_create`` so
    that all missing fields are reported together.
    """
    firstName = CleanCharField(source='first_name', max_length=100, required=False, allow_null=True)
    lastName = CleanCharField(source='last_name', max_length=100, required=False, allow_null=True)
    dateOfBirth = serializers.DateField(source='date_of_birth', required=False, allow_null=True)
    gender = serializers.ChoiceField(choices=Gender.choices, required=False, allow_null=True)
    ssn = serializers.CharField(required=False, allow_blank=True, allow_null=True, write_only=True)
    email = serializers.EmailField(required=False, allow_blank=True, allow_null=True)
    phone = CleanCharField(max_length=32, required=False, allow_blank=True, allow_null=True)
    address = AddressSerializer(required=False, allow_null=True)
    emergencyContact = EmergencyContactSerializer(source='emergency_contact', required=False, allow_null=True)
    insurance = InsuranceSerializer(required=False, allow_null=True)
    bloodType = serializers.ChoiceField(source='blood_type', choices=BloodType.choices, required=False,
                                        allow_blank=True, allow_null=True)
    status = serializers.ChoiceField(choices=SETTABLE_STATUSES, required=False, allow_null=True)
    assignedPhysicianId = serializers.PrimaryKeyRelatedField(
        source='assigned_physician', queryset=User.objects.filter(role=Role.PHYSICIAN, is_active=True),
        required=False, allow_null=True,
    )
    version = serializers.IntegerField(required=False, min_value=1)

    def validate_ssn(self, v):
        v = (v or '').strip()
        if v and not SSN_RE.match(v):
            raise serializers.ValidationError('SSN must look like 123-45-6789')
        return v

    def validate(self, attrs):
        for key in NON_NULLABLE:
            if key in attrs and attrs[key] is None:
                del attrs[key]
        for key in ('address', 'emergency_contact', 'insurance'):
            if key in attrs:
                attrs[key] = dict(attrs[key])
        return attrs


class PatientSearchSerializer(serializers.Serializer):
    name = CleanCharField(max_length=200, required=False, allow_blank=True)
    medicalRecordNumber = CleanCharField(source='medical_record_number', max_length=32, required=False,
                                         allow_blank=True)
    dateOfBirth = serializers.DateField(source='date_of_birth', required=False, allow_null=True)
    phone = CleanCharField(max_length=32, required=False, allow_blank=True)
    assignedPhysician = CleanCharField(source='assigned_physician', max_length=150, required=False,
                                       allow_blank=True)
    status = serializers.ChoiceField(choices=PatientStatus.choices, required=False, allow_null=True)


class PatientListQuerySerializer(serializers.Serializer):
    # page and pageSize are clamped, never rejected
    page = serializers.CharField(required=False)
    pageSize = serializers.CharField(required=False)
    search = serializers.CharField(required=False, allow_blank=True, max_length=200)
    status = serializers.ChoiceField(choices=PatientStatus.choices, required=False)
    assignedPhysician = serializers.CharField(required=False, allow_blank=True, max_length=150)


def _physician_ref(user):
    if user is None:
        return None
    return {'id': user.id, 'name': user.get_full_name() or user.username}


def _age(dob, today=None):
    today = today or timezone.localdate()
    return today.year - dob.year - ((today.month, today.day) < (dob.month, dob.day))


class PatientSummarySerializer(serializers.ModelSerializer):
    medicalRecordNumber = serializers.CharField(source='medical_record_number')
    firstName = serializers.CharField(source='first_name')
    lastName = serializers.CharField(source='last_name')
    fullName = serializers.CharField(source='full_name')
    dateOfBirth = serializers.DateField(source='date_of_birth')
    age = serializers.SerializerMethodField()
    assignedPhysician = serializers.SerializerMethodField()
    lastVisit = serializers.DateTimeField(source='last_visit')
    nextAppointment = serializers.DateTimeField(source='next_appointment')

    class Meta:
        model = Patient
        fields = [
            'id', 'medicalRecordNumber', 'firstName', 'lastName', 'fullName', 'dateOfBirth', 'age',
            'gender', 'phone', 'email', 'status', 'assignedPhysician', 'lastVisit', 'nextAppointment',
        ]

    def get_age(self, obj):
        return _age(obj.date_of_birth)

    def get_assignedPhysician(self, obj):
        return _physician_ref(obj.assigned_physician)


class PatientSerializer(PatientSummarySerializer):
    ssn = serializers.SerializerMethodField()
    emergencyContact = serializers.JSONField(source='emergency_contact')
    bloodType = serializers.CharField(source='blood_type')
    createdAt = serializers.DateTimeField(source='created_at')
    updatedAt = serializers.DateTimeField(source='updated_at')
    createdBy = serializers.CharField(source='created_by')
    lastModifiedBy = serializers.CharField(source='last_modified_by')
    archivedAt = serializers.DateTimeField(source='archived_at')

    class Meta(PatientSummarySerializer.Meta):
        fields = PatientSummarySerializer.Meta.fields + [
            'ssn', 'address', 'emergencyContact', 'insurance', 'bloodType',
            'createdAt', 'updatedAt', 'createdBy', 'lastModifiedBy', 'archivedAt', 'version',
        ]

    def get_ssn(self, obj):
        return mask_ssn(obj.ssn_last4)


class AllergySerializer(serializers.Serializer):
    id = serializers.IntegerField()
    allergen = serializers.CharField()
    severity = serializers.CharField()
    reaction = serializers.CharField()
    onsetDate = serializers.DateField(source='onset_date')
    notes = serializers.CharField()
    isActive = serializers.BooleanField(source='is_active')


class MedicationSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    name = serializers.CharField()
    dosage = serializers.CharField()
    frequency = serializers.CharField()
    prescribedBy = serializers.CharField(source='prescribed_by')
    prescribedDate = serializers.DateField(source='prescribed_date')
    startDate = serializers.DateField(source='start_date')
    endDate = serializers.DateField(source='end_date')
    isActive = serializers.BooleanField(source='is_active')
    notes = serializers.CharField()


class VitalSignsSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    patientId = serializers.UUIDField(source='patient_id')
    recordedAt = serializers.DateTimeField(source='recorded_at')
    recordedBy = serializers.CharField(source='recorded_by')
    temperature = serializers.DecimalField(max_digits=4, decimal_places=1, coerce_to_string=False)
    bloodPressure = serializers.SerializerMethodField()
    heartRate = serializers.IntegerField(source='heart_rate')
    respiratoryRate = serializers.IntegerField(source='respiratory_rate')
    oxygenSaturation = serializers.DecimalField(source='oxygen_saturation', max_digits=4, decimal_places=1,
                                                coerce_to_string=False)
    weight = serializers.DecimalField(max_digits=5, decimal_places=1, coerce_to_string=False)
    height = serializers.DecimalField(max_digits=4, decimal_places=1, coerce_to_string=False)
    bmi = serializers.DecimalField(max_digits=4, decimal_places=1, coerce_to_string=False)
    notes = serializers.CharField()

    def get_bloodPressure(self, obj):
        if obj.systolic is None and obj.diastolic is None:
            return None
        return {'systolic': obj.systolic, 'diastolic': obj.diastolic}


class AppointmentSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    physician = serializers.SerializerMethodField()
    scheduledDate = serializers.DateTimeField(source='scheduled_date')
    duration = serializers.IntegerField()
    type = serializers.CharField()
    status = serializers.CharField()
    reason = serializers.CharField()
    roomNumber = serializers.CharField(source='room_number')

    def get_physician(self, obj):
        return _physician_ref(obj.physician)


class PatientDetailSerializer(PatientSerializer):
    allergies = AllergySerializer(source='active_allergies', many=True)
    currentMedications = MedicationSerializer(source='active_medications', many=True)
    recentVitalSigns = VitalSignsSerializer(source='recent_vital_signs', many=True)
    recentAppointments = AppointmentSerializer(source='recent_appointments', many=True)

    class Meta(PatientSerializer.Meta):
        fields = PatientSerializer.Meta.fields + [
            'allergies', 'currentMedications', 'recentVitalSigns', 'recentAppointments',
        ]


class MedicalHistorySerializer(serializers.Serializer):
    id = serializers.IntegerField()
    condition = serializers.CharField()
    diagnosisDate = serializers.DateField(source='diagnosis_date')
    status = serializers.CharField()
    treatingPhysician = serializers.CharField(source='treating_physician')
    notes = serializers.CharField()
    icd10Code = serializers.CharField(source='icd10_code')


class PatientSearchResultSerializer(serializers.ModelSerializer):
    medicalRecordNumber = serializers.CharField(source='medical_record_number')
    fullName = serializers.CharField(source='full_name')
    dateOfBirth = serializers.DateField(source='date_of_birth')
    assignedPhysician = serializers.SerializerMethodField()

    class Meta:
        model = Patient
        fields = ['id', 'medicalRecordNumber', 'fullName', 'dateOfBirth', 'phone', 'status', 'assignedPhysician']

    def get_assignedPhysician(self, obj):
        return _physician_ref(obj.assigned_physician)
