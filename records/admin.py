"""
Django admin registrations.

Patients are read-only here: every change has to go through the API so it
is version-checked and audited.  The audit trail is read-only too.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import (
    Allergy,
    Appointment,
    AuditRecord,
    CareTeamMember,
    MedicalHistoryEntry,
    Medication,
    Patient,
    User,
    VitalSigns,
)


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ('username', 'role', 'department', 'is_staff', 'is_active')
    list_filter = ('role', 'is_staff', 'is_active')
    search_fields = ('username', 'first_name', 'last_name', 'email')
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Clinical role', {'fields': ('role', 'department', 'license_number', 'mfa_enabled')}),
    )


class CareTeamInline(admin.TabularInline):
    model = CareTeamMember
    extra = 0


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('medical_record_number', 'last_name', 'first_name', 'status', 'assigned_physician')
    list_filter = ('status', 'gender')
    search_fields = ('medical_record_number', 'last_name', 'first_name')
    readonly_fields = ('medical_record_number', 'ssn_encrypted', 'ssn_last4', 'created_at', 'updated_at',
                       'created_by', 'last_modified_by', 'archived_at', 'archived_by', 'version')
    inlines = [CareTeamInline]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Allergy)
class AllergyAdmin(admin.ModelAdmin):
    list_display = ('patient', 'allergen', 'severity', 'is_active')
    list_filter = ('severity', 'is_active')


@admin.register(Medication)
class MedicationAdmin(admin.ModelAdmin):
    list_display = ('patient', 'name', 'dosage', 'frequency', 'is_active')
    list_filter = ('is_active',)
    search_fields = ('name',)


@admin.register(MedicalHistoryEntry)
class MedicalHistoryEntryAdmin(admin.ModelAdmin):
    list_display = ('patient', 'condition', 'diagnosis_date', 'status')
    list_filter = ('status',)


@admin.register(VitalSigns)
class VitalSignsAdmin(admin.ModelAdmin):
    list_display = ('patient', 'recorded_at', 'recorded_by', 'heart_rate', 'systolic', 'diastolic')

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('patient', 'physician', 'scheduled_date', 'type', 'status')
    list_filter = ('type', 'status')


@admin.register(AuditRecord)
class AuditRecordAdmin(admin.ModelAdmin):
    list_display = ('timestamp', 'actor_id', 'resource_type', 'action', 'ip_address')
    list_filter = ('resource_type', 'action')
    search_fields = ('actor_id', 'detail')

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
