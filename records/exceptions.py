"""
Error types and the project-wide DRF exception handler.

Every non-2xx response uses the same envelope::

    {"ok": false, "error": {"code": "...", "message": "..."}}

Validation failures add an ``errors`` list.  Unexpected exceptions are
logged with their traceback and answered with a generic message; the
client never sees exception text.
"""
from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = 'An unexpected error occurred while processing the request'


class AuditLoggingError(APIException):
    """The audit trail could not be written; the request is not completed."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'The audit trail is temporarily unavailable; the request was not completed'
    default_code = 'audit_unavailable'


class StalePatientError(Exception):
    """An update was based on an out-of-date version of the patient record."""

    def __init__(self, patient_id, expected_version: int, current_version: int):
        super().__init__(f'patient {patient_id} is at version {current_version}, not {expected_version}')
        self.patient_id = patient_id
        self.expected_version = expected_version
        self.current_version = current_version


def error_response(http_status: int, code: str, message, *, errors=None, **extra) -> Response:
    body: dict = {'ok': False, 'error': {'code': code, 'message': message}}
    if errors is not None:
        body['errors'] = errors
    body.update(extra)
    return Response(body, status=http_status)


def _flatten(detail) -> list[str]:
    if isinstance(detail, dict):
        out: list[str] = []
        for field, value in detail.items():
            for msg in _flatten(value):
                out.append(msg if field == 'non_field_errors' else f'{field}: {msg}')
        return out
    if isinstance(detail, (list, tuple)):
        out = []
        for item in detail:
            out.extend(_flatten(item))
        return out
    return [str(detail)]


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        view = context.get('view')
        logger.error('Unhandled error in %s', type(view).__name__, exc_info=exc)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, 'server_error', GENERIC_ERROR_MESSAGE)
    code = getattr(exc, 'default_code', 'api_error')
    if resp.status_code == status.HTTP_400_BAD_REQUEST:
        errors = _flatten(resp.data)
        return error_response(resp.status_code, 'validation_error', 'The request is invalid', errors=errors)
    detail = resp.data.get('detail') if isinstance(resp.data, dict) else None
    message = str(detail) if detail is not None else '; '.join(_flatten(resp.data))
    response = error_response(resp.status_code, code, message)
    for header in ('WWW-Authenticate', 'Retry-After'):
        if header in resp:
            response[header] = resp[header]
    return response
