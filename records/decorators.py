"""
The authorize -> execute -> audit chain shared by every patient endpoint.

A handler decorated with :func:`patient_action` receives the resolved
:class:`Actor` and only has to do its own work.  It returns either a
plain ``Response`` (an error outcome: nothing is audited) or an
:class:`Audited` wrapper, in which case exactly one audit record is
written before the wrapped response goes out.
"""
from __future__ import annotations

import functools
import logging
from dataclasses import dataclass

from django.db import transaction
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response

from .exceptions import error_response
from .logging import bind_request_context
from .services.access import can_access_patient
from .services.audit import MUTATING_ACTIONS, RESOURCE_PATIENT, client_ip, log_access

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    id: str
    role: str

    @classmethod
    def from_request(cls, request) -> 'Actor':
        user = request.user
        return cls(id=str(user.pk), role=getattr(user, 'role', ''))


@dataclass
class Audited:
    """A successful outcome plus the audit detail describing it."""
    response: Response
    detail: str


def patient_action(action: str, *, scoped: bool = True,
                   denied_message: str = "You do not have permission to access this patient's information",
                   failure_message: str = 'An error occurred while processing the request'):
    """Wrap a patient handler ``handler(request, actor, **kwargs)``.

    ``scoped`` handlers get the patient id as ``pk`` and are refused with a
    403 before they run when the access policy says no.  Mutating actions
    run in one transaction together with their audit record.  Unexpected
    exceptions are logged and answered with ``failure_message``.
    """
    mutating = action in MUTATING_ACTIONS

    def decorator(handler):
        def complete(request, actor, kwargs):
            outcome = handler(request, actor, **kwargs)
            if not isinstance(outcome, Audited):
                return outcome
            log_access(actor.id, RESOURCE_PATIENT, action, outcome.detail,
                       mutating=mutating, ip_address=client_ip(request))
            return outcome.response

        @functools.wraps(handler)
        def wrapper(request, **kwargs):
            actor = Actor.from_request(request)
            bind_request_context(getattr(request, 'request_id', None), actor.id)

            if scoped and not can_access_patient(kwargs.get('pk'), actor.id, actor.role):
                logger.warning('Access denied: actor %s (%s) attempted %s on patient %s',
                               actor.id, actor.role, action, kwargs.get('pk'))
                return error_response(status.HTTP_403_FORBIDDEN, 'forbidden', denied_message)

            try:
                if mutating:
                    with transaction.atomic():
                        return complete(request, actor, kwargs)
                return complete(request, actor, kwargs)
            except APIException:
                raise
            except Exception:
                logger.exception('%s failed for actor %s (patient %s)', action, actor.id, kwargs.get('pk', '-'))
                return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, 'server_error', failure_message)

        return wrapper

    return decorator
