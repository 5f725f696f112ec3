"""
JWT authentication carrying the user's role.

Tokens are issued by :func:`issue_tokens_for` with a ``role`` claim on the
refresh token; simplejwt copies it into every access token derived from
it.  :class:`RoleClaimJWTAuthentication` rejects a token whose claim no
longer matches the user's current role, so a role change takes effect on
the next request rather than when the token expires.
"""
from __future__ import annotations

import logging

from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import AuthenticationFailed
from rest_framework_simplejwt.tokens import RefreshToken

logger = logging.getLogger(__name__)

ROLE_CLAIM = 'role'


def issue_tokens_for(user) -> RefreshToken:
    refresh = RefreshToken.for_user(user)
    refresh[ROLE_CLAIM] = user.role
    return refresh


class RoleClaimJWTAuthentication(JWTAuthentication):
    """``Authorization: Bearer <access>`` with a role claim check."""

    def get_user(self, validated_token):
        user = super().get_user(validated_token)
        claimed = validated_token.get(ROLE_CLAIM)
        if claimed != user.role:
            logger.warning('Rejected token for user %s: role claim %r, current role %r',
                           user.pk, claimed, user.role)
            raise AuthenticationFailed('Token role no longer matches the account', code='role_mismatch')
        return user
