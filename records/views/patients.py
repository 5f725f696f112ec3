"""
Patient record endpoints.

Every handler goes through :func:`records.decorators.patient_action`, so
the per-patient access check, the audit record and the generic 500
handling are identical across endpoints.  The view functions here only
normalise input, call ``records.services.patients`` and map the result to
a response.
"""
from __future__ import annotations

import json

from django.conf import settings
from django.urls import reverse
from drf_yasg.utils import swagger_auto_schema
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.response import Response
from rest_framework.throttling import UserRateThrottle

from records.decorators import Audited, patient_action
from records.exceptions import StalePatientError, error_response
from records.permissions import allow_roles
from records.roles import (
    MEDICAL_HISTORY_ROLES,
    PATIENT_ARCHIVE_ROLES,
    PATIENT_LIST_ROLES,
    PATIENT_VIEW_ROLES,
    PATIENT_WRITE_ROLES,
    VITAL_SIGNS_ROLES,
)
from records.serializers.patient import (
    MedicalHistorySerializer,
    PatientDetailSerializer,
    PatientInputSerializer,
    PatientListQuerySerializer,
    PatientSearchResultSerializer,
    PatientSearchSerializer,
    PatientSerializer,
    PatientSummarySerializer,
    VitalSignsSerializer,
)
from records.services import audit
from records.services import patients as patient_service
from records.throttling import PatientWriteRateThrottle

MAX_VITAL_SIGNS_DAYS = 3650


def _not_found(pk):
    return error_response(status.HTTP_404_NOT_FOUND, 'not_found', f'Patient with ID {pk} not found')


def _invalid(errors):
    return error_response(status.HTTP_400_BAD_REQUEST, 'validation_error', 'The request is invalid', errors=errors)


def _expected_version(request, data):
    """Version the client based its edit on: body ``version`` or ``If-Match``."""
    if data.get('version') is not None:
        return data['version']
    raw = request.headers.get('If-Match', '').strip()
    raw = raw.removeprefix('W/').strip('"')
    return int(raw) if raw.isdigit() else None


def _days(raw) -> int:
    try:
        days = int(raw)
    except (TypeError, ValueError):
        return settings.VITAL_SIGNS_DEFAULT_DAYS
    if days < 1:
        return settings.VITAL_SIGNS_DEFAULT_DAYS
    return min(days, MAX_VITAL_SIGNS_DAYS)


def _with_etag(response, patient):
    response['ETag'] = f'"{patient.version}"'
    return response


# ---------------------------------------------------------------------
# /patients
# ---------------------------------------------------------------------
@patient_action(audit.LIST, scoped=False, failure_message='An error occurred while retrieving patients')
def _list_patients(request, actor):
    q = PatientListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    page, page_size = patient_service.normalize_paging(
        vd.get('page', 1), vd.get('pageSize', patient_service.DEFAULT_PAGE_SIZE)
    )
    search = (vd.get('search') or '').strip() or None
    result = patient_service.list_patients(
        page, page_size, search, vd.get('status'), vd.get('assignedPhysician') or None,
        actor_role=actor.role, actor_id=actor.id,
    )
    body = {
        'patients': PatientSummarySerializer(result.patients, many=True).data,
        'totalCount': result.total_count,
        'pageSize': result.page_size,
        'currentPage': result.current_page,
        'totalPages': result.total_pages,
    }
    return Audited(Response(body), f"Page: {page}, PageSize: {page_size}, Search: {search or ''}")


@patient_action(audit.CREATE, scoped=False, failure_message='An error occurred while creating the patient')
def _create_patient(request, actor):
    s = PatientInputSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = s.validated_data
    result = patient_service.validate_create(data)
    if not result.is_valid:
        return _invalid(result.errors)
    patient = patient_service.create_patient(data, actor.id, actor.role)
    response = Response(PatientSerializer(patient).data, status=status.HTTP_201_CREATED)
    response['Location'] = reverse('patient_item', kwargs={'pk': patient.pk})
    return Audited(_with_etag(response, patient),
                   f'PatientId: {patient.pk}, MRN: {patient.medical_record_number}')


@swagger_auto_schema(method='get', query_serializer=PatientListQuerySerializer)
@swagger_auto_schema(method='post', request_body=PatientInputSerializer, responses={201: PatientSerializer})
@api_view(['GET', 'POST'])
@permission_classes([allow_roles(GET=PATIENT_LIST_ROLES, POST=PATIENT_WRITE_ROLES)])
@throttle_classes([UserRateThrottle, PatientWriteRateThrottle])
def patients_collection(request):
    """``GET`` lists patients visible to the caller; ``POST`` registers a new one."""
    if request.method == 'POST':
        return _create_patient(request)
    return _list_patients(request)


# ---------------------------------------------------------------------
# /patients/{id}
# ---------------------------------------------------------------------
@patient_action(audit.VIEW, failure_message='An error occurred while retrieving the patient')
def _get_patient(request, actor, pk):
    patient = patient_service.get_patient_detail(pk)
    if patient is None:
        return _not_found(pk)
    return Audited(_with_etag(Response(PatientDetailSerializer(patient).data), patient), f'PatientId: {pk}')


@patient_action(audit.UPDATE,
                denied_message="You do not have permission to update this patient's information",
                failure_message='An error occurred while updating the patient')
def _update_patient(request, actor, pk):
    s = PatientInputSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    data = dict(s.validated_data)
    expected = _expected_version(request, data)
    data.pop('version', None)
    try:
        patient = patient_service.update_patient(pk, data, actor.id, expected_version=expected)
    except StalePatientError as exc:
        return error_response(
            status.HTTP_409_CONFLICT, 'conflict',
            'The patient record was changed by someone else; reload it and try again',
            currentVersion=exc.current_version,
        )
    if patient is None:
        return _not_found(pk)
    return Audited(_with_etag(Response(PatientSerializer(patient).data), patient), f'PatientId: {pk}')


@patient_action(audit.ARCHIVE,
                denied_message='You do not have permission to archive this patient',
                failure_message='An error occurred while archiving the patient')
def _archive_patient(request, actor, pk):
    patient = patient_service.archive_patient(pk, actor.id)
    if patient is None:
        return _not_found(pk)
    return Audited(Response(status=status.HTTP_204_NO_CONTENT), f'PatientId: {pk}')


@swagger_auto_schema(method='get', responses={200: PatientDetailSerializer})
@swagger_auto_schema(method='put', request_body=PatientInputSerializer, responses={200: PatientSerializer})
@api_view(['GET', 'PUT', 'DELETE'])
@permission_classes([allow_roles(GET=PATIENT_VIEW_ROLES, PUT=PATIENT_WRITE_ROLES, DELETE=PATIENT_ARCHIVE_ROLES)])
@throttle_classes([UserRateThrottle, PatientWriteRateThrottle])
def patient_item(request, pk):
    """Read, update or archive one patient.

    ``PUT`` is a partial update: fields left out of the body are kept.  Send
    the ``version`` from the last read (or an ``If-Match`` header) to be
    told with a 409 when someone else changed the record in between.
    ``DELETE`` archives the record; nothing is removed.
    """
    if request.method == 'PUT':
        return _update_patient(request, pk=pk)
    if request.method == 'DELETE':
        return _archive_patient(request, pk=pk)
    return _get_patient(request, pk=pk)


# ---------------------------------------------------------------------
# Sub-resources
# ---------------------------------------------------------------------
@swagger_auto_schema(method='get', responses={200: MedicalHistorySerializer(many=True)})
@api_view(['GET'])
@permission_classes([allow_roles(*MEDICAL_HISTORY_ROLES)])
@patient_action(audit.VIEW_MEDICAL_HISTORY,
                denied_message="You do not have permission to access this patient's medical history",
                failure_message='An error occurred while retrieving medical history')
def patient_medical_history(request, actor, pk):
    if patient_service.get_patient(pk) is None:
        return _not_found(pk)
    history = patient_service.get_medical_history(pk)
    return Audited(Response(MedicalHistorySerializer(history, many=True).data), f'PatientId: {pk}')


@swagger_auto_schema(method='get', responses={200: VitalSignsSerializer(many=True)})
@api_view(['GET'])
@permission_classes([allow_roles(*VITAL_SIGNS_ROLES)])
@patient_action(audit.VIEW_VITAL_SIGNS,
                denied_message="You do not have permission to access this patient's vital signs",
                failure_message='An error occurred while retrieving vital signs')
def patient_vital_signs(request, actor, pk):
    """Vital signs from the last ``days`` days (default 30), newest first."""
    days = _days(request.query_params.get('days'))
    if patient_service.get_patient(pk) is None:
        return _not_found(pk)
    vitals = patient_service.get_vital_signs(pk, days)
    return Audited(Response(VitalSignsSerializer(vitals, many=True).data), f'PatientId: {pk}, Days: {days}')


@swagger_auto_schema(method='post', request_body=PatientSearchSerializer,
                     responses={200: PatientSearchResultSerializer(many=True)})
@api_view(['POST'])
@permission_classes([allow_roles(*PATIENT_LIST_ROLES)])
@patient_action(audit.SEARCH, scoped=False, failure_message='An error occurred while searching patients')
def patient_search(request, actor):
    s = PatientSearchSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    results = patient_service.search_patients(s.validated_data, actor.role, actor.id)
    criteria = {
        name: s.validated_data[field.source]
        for name, field in s.fields.items()
        if s.validated_data.get(field.source) not in (None, '')
    }
    return Audited(
        Response(PatientSearchResultSerializer(results, many=True).data),
        f'Criteria: {json.dumps(criteria, default=str, sort_keys=True)}',
    )
