"""
Per-patient access policy.

``can_access_patient`` answers whether an actor may touch one patient
record.  The decision is delegated to a strategy chosen by the actor's
role (``settings.PATIENT_ACCESS_STRATEGIES``), and every strategy also
knows how to narrow a patient queryset so list and search results obey
the same rule as direct lookups.

Nothing here raises for missing patients or malformed ids: the answer is
simply ``False``.  Blanket strategies answer ``True`` without looking at
the database, so the caller still has to detect a missing patient.
"""
from __future__ import annotations

import logging
import uuid
from functools import lru_cache
from typing import Optional

from django.conf import settings
from django.db import DatabaseError
from django.db.models import Q, QuerySet
from django.utils.module_loading import import_string

from records.models import CareTeamMember, Patient

logger = logging.getLogger(__name__)


def _as_user_pk(actor_id) -> Optional[int]:
    try:
        return int(actor_id)
    except (TypeError, ValueError):
        return None


def _as_patient_pk(patient_id) -> Optional[uuid.UUID]:
    if isinstance(patient_id, uuid.UUID):
        return patient_id
    try:
        return uuid.UUID(str(patient_id))
    except (TypeError, ValueError, AttributeError):
        return None


class AccessStrategy:
    """Base strategy: permits nothing."""

    def permits(self, patient_id: uuid.UUID, actor_pk: int) -> bool:
        return False

    def scope(self, queryset: QuerySet, actor_pk: Optional[int]) -> QuerySet:
        return queryset.none()


class DenyAll(AccessStrategy):
    pass


class BlanketAccess(AccessStrategy):
    """Every patient, e.g. administrators and physicians."""

    def permits(self, patient_id, actor_pk) -> bool:
        return True

    def scope(self, queryset, actor_pk):
        return queryset


class CareTeamAccess(AccessStrategy):
    """Patients the actor is the assigned physician of, or on the care team of."""

    def permits(self, patient_id, actor_pk) -> bool:
        if actor_pk is None:
            return False
        if Patient.objects.filter(pk=patient_id, assigned_physician_id=actor_pk).exists():
            return True
        return CareTeamMember.objects.filter(patient_id=patient_id, user_id=actor_pk).exists()

    def scope(self, queryset, actor_pk):
        if actor_pk is None:
            return queryset.none()
        return queryset.filter(Q(assigned_physician_id=actor_pk) | Q(care_team__user_id=actor_pk)).distinct()


class OwnRecordAccess(AccessStrategy):
    """A patient's portal account sees only its own record."""

    def permits(self, patient_id, actor_pk) -> bool:
        if actor_pk is None:
            return False
        return Patient.objects.filter(pk=patient_id, account_id=actor_pk).exists()

    def scope(self, queryset, actor_pk):
        if actor_pk is None:
            return queryset.none()
        return queryset.filter(account_id=actor_pk)


@lru_cache(maxsize=None)
def _load_strategy(dotted_path: str) -> AccessStrategy:
    return import_string(dotted_path)()


def strategy_for(role: Optional[str]) -> AccessStrategy:
    dotted_path = getattr(settings, 'PATIENT_ACCESS_STRATEGIES', {}).get(role or '')
    if not dotted_path:
        return DenyAll()
    return _load_strategy(dotted_path)


def can_access_patient(patient_id, actor_id, actor_role: Optional[str]) -> bool:
    """Return True when ``actor_id`` acting as ``actor_role`` may access the patient."""
    patient_pk = _as_patient_pk(patient_id)
    if patient_pk is None:
        return False
    try:
        return strategy_for(actor_role).permits(patient_pk, _as_user_pk(actor_id))
    except DatabaseError:
        logger.exception("Access check failed for role %s; denying", actor_role)
        return False


def accessible_patients(queryset: QuerySet, actor_id, actor_role: Optional[str]) -> QuerySet:
    """Narrow ``queryset`` to the patients the actor may access."""
    return strategy_for(actor_role).scope(queryset, _as_user_pk(actor_id))
