"""
URL mappings for the PatientCare API.

All API paths live under ``api/v1`` and carry no trailing slash
(``APPEND_SLASH`` is off).  Patient ids are UUIDs; anything else in the
id position does not match a route and yields a 404.
"""
from django.urls import include, path

from .views import audit, auth, health, patients

urlpatterns = [
    path('', include('django_prometheus.urls')),
    path('healthz', health.healthz, name='healthz'),
    # Authentication
    path('api/v1/auth/login', auth.login_view, name='login_view'),
    path('api/v1/auth/refresh', auth.refresh_view, name='refresh_view'),
    path('api/v1/auth/logout', auth.logout_view, name='logout_view'),
    # Patients
    path('api/v1/patients', patients.patients_collection, name='patients_collection'),
    path('api/v1/patients/search', patients.patient_search, name='patient_search'),
    path('api/v1/patients/<uuid:pk>', patients.patient_item, name='patient_item'),
    path('api/v1/patients/<uuid:pk>/medical-history', patients.patient_medical_history,
         name='patient_medical_history'),
    path('api/v1/patients/<uuid:pk>/vital-signs', patients.patient_vital_signs, name='patient_vital_signs'),
    # Audit trail
    path('api/v1/audit/records', audit.audit_records, name='audit_records'),
    path('api/v1/audit/security-event', audit.security_event, name='security_event'),
]
