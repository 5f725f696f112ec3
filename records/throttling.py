from rest_framework.permissions import SAFE_METHODS
from rest_framework.throttling import AnonRateThrottle, UserRateThrottle


class PatientWriteRateThrottle(UserRateThrottle):
    """Per-user limit on patient mutations; reads are not counted."""
    scope = 'patient_write'

    def allow_request(self, request, view):
        if request.method in SAFE_METHODS:
            return True
        return super().allow_request(request, view)


class LoginRateThrottle(AnonRateThrottle):
    scope = 'login'
