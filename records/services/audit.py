import logging
import time
from typing import Optional

from django.conf import settings
from django.db import DatabaseError, transaction

from records.exceptions import AuditLoggingError
from records.models import AuditRecord

logger = logging.getLogger(__name__)

RESOURCE_PATIENT = 'Patient'
RESOURCE_SESSION = 'Session'
RESOURCE_SECURITY_EVENT = 'SecurityEvent'

# Patient controller vocabulary
LIST = 'List'
VIEW = 'View'
CREATE = 'Create'
UPDATE = 'Update'
ARCHIVE = 'Archive'
VIEW_MEDICAL_HISTORY = 'ViewMedicalHistory'
VIEW_VITAL_SIGNS = 'ViewVitalSigns'
SEARCH = 'Search'

PATIENT_ACTIONS = frozenset({
    LIST, VIEW, CREATE, UPDATE, ARCHIVE, VIEW_MEDICAL_HISTORY, VIEW_VITAL_SIGNS, SEARCH,
})
MUTATING_ACTIONS = frozenset({CREATE, UPDATE, ARCHIVE})

# Session vocabulary
LOGIN = 'Login'
LOGIN_FAILED = 'LoginFailed'
LOGOUT = 'Logout'


def _write(actor_id: str, resource_type: str, action: str, detail: str, ip_address: Optional[str]) -> AuditRecord:
    # savepoint so a failed insert does not poison an enclosing transaction
    with transaction.atomic():
        return AuditRecord.objects.create(
            actor_id=str(actor_id or ''),
            resource_type=resource_type,
            action=action,
            detail=detail or '',
            ip_address=ip_address,
        )


def log_access(actor_id, resource_type: str, action: str, detail: str = '', *,
               mutating: Optional[bool] = None, ip_address: Optional[str] = None) -> AuditRecord:
    """Append one audit record.

    Mutating actions get a single attempt: callers run this inside the
    transaction that holds the mutation, so a failure here rolls the
    mutation back.  Read actions are retried ``AUDIT_READ_RETRIES`` times,
    ``AUDIT_RETRY_DELAY`` seconds apart, before the failure is surfaced.
    Either way a failure raises :class:`AuditLoggingError`.
    """
    if mutating is None:
        mutating = action in MUTATING_ACTIONS
    attempts = 1 if mutating else 1 + max(0, settings.AUDIT_READ_RETRIES)
    for attempt in range(1, attempts + 1):
        try:
            return _write(actor_id, resource_type, action, detail, ip_address)
        except DatabaseError:
            logger.warning('Audit write failed (%s/%s) for %s %s', attempt, attempts, resource_type, action,
                           exc_info=True)
            if attempt < attempts:
                time.sleep(settings.AUDIT_RETRY_DELAY)
    logger.error('Audit trail unavailable; %s %s by actor %s not recorded', resource_type, action, actor_id)
    raise AuditLoggingError()


def client_ip(request) -> Optional[str]:
    return request.META.get('REMOTE_ADDR') or None
