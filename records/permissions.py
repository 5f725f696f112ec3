"""
Role-gated endpoint permissions.

Each patient endpoint has a fixed allow-list of roles per HTTP method
(see ``records.roles``).  Views declare it with :func:`allow_roles` and
DRF turns a miss into a 403 before the handler runs.
"""
from rest_framework.permissions import BasePermission

from .roles import AUDIT_TRAIL_ROLES


class RolePermission(BasePermission):
    """Grant access when the user's role is allowed for the request method.

    ``roles_by_method`` maps an upper-case method name to a set of roles;
    the ``'*'`` key applies to methods not listed.
    """
    roles_by_method: dict = {}
    message = 'Your role is not permitted to perform this action'

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        if not (user and user.is_authenticated):
            return False
        allowed = self.roles_by_method.get(request.method, self.roles_by_method.get('*', ()))
        return getattr(user, "role", None) in allowed


def allow_roles(*roles, **by_method):
    """Build a :class:`RolePermission` subclass.

    ``allow_roles(Role.ADMIN)`` allows the roles for every method;
    ``allow_roles(GET=view_roles, PUT=write_roles)`` sets them per method.
    """
    mapping = {method.upper(): frozenset(allowed) for method, allowed in by_method.items()}
    if roles:
        mapping['*'] = frozenset(roles)
    return type('RolePermission', (RolePermission,), {'roles_by_method': mapping})


class IsAuditor(RolePermission):
    """Read access to the audit trail."""
    roles_by_method = {'*': AUDIT_TRAIL_ROLES}
