"""
Session endpoints: login, token refresh and logout.

Tokens are simplejwt JWTs with the caller's role embedded (see
``records.authentication``).  Every login attempt and every logout leaves
an audit record under the ``Session`` resource type; failed attempts are
recorded against the submitted username only.
"""
from __future__ import annotations

import logging

from django.conf import settings
from django.contrib.auth import authenticate
from django.contrib.auth.models import update_last_login
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework_simplejwt.serializers import TokenRefreshSerializer
from rest_framework_simplejwt.settings import api_settings as jwt_settings
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken

from records.authentication import issue_tokens_for
from records.exceptions import error_response
from records.roles import permissions_for
from records.serializers.auth import LoginSerializer, LogoutSerializer
from records.services.audit import LOGIN, LOGIN_FAILED, LOGOUT, RESOURCE_SESSION, client_ip, log_access
from records.throttling import LoginRateThrottle

logger = logging.getLogger(__name__)


def _user_payload(user) -> dict:
    return {
        'id': user.id,
        'username': user.username,
        'name': user.get_full_name() or user.username,
        'email': user.email,
        'role': user.role,
        'department': user.department,
        'mfaEnabled': user.mfa_enabled,
    }


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
@throttle_classes([LoginRateThrottle])
def login_view(request):
    """Exchange username and password for an access/refresh token pair."""
    s = LoginSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    username = s.validated_data['username']
    ip = client_ip(request)

    user = authenticate(request, username=username, password=s.validated_data['password'])
    if user is None:
        log_access('', RESOURCE_SESSION, LOGIN_FAILED, f'Username: {username}', mutating=True, ip_address=ip)
        logger.info('Failed login attempt from %s', ip or 'unknown address')
        return error_response(status.HTTP_401_UNAUTHORIZED, 'invalid_credentials', 'Invalid username or password')

    refresh = issue_tokens_for(user)
    log_access(user.pk, RESOURCE_SESSION, LOGIN, f'Role: {user.role}', mutating=True, ip_address=ip)
    update_last_login(None, user)

    return Response({
        'ok': True,
        'access': str(refresh.access_token),
        'refresh': str(refresh),
        'expiresIn': int(settings.SIMPLE_JWT['ACCESS_TOKEN_LIFETIME'].total_seconds()),
        'user': _user_payload(user),
        'permissions': sorted(permissions_for(user.role)),
    })


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def refresh_view(request):
    """Return a new access token (and a rotated refresh token)."""
    s = TokenRefreshSerializer(data=request.data)
    try:
        s.is_valid(raise_exception=True)
    except TokenError as exc:
        raise InvalidToken(exc.args[0])
    data = dict(s.validated_data)
    data['ok'] = True
    return Response(data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def logout_view(request):
    """Blacklist the given refresh token, or every outstanding one of the caller."""
    s = LogoutSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    raw = s.validated_data.get('refresh')
    count = 0
    if raw:
        try:
            token = RefreshToken(raw)
        except TokenError:
            return error_response(status.HTTP_400_BAD_REQUEST, 'invalid_token', 'Refresh token is invalid or expired')
        if str(token.get(jwt_settings.USER_ID_CLAIM)) != str(request.user.pk):
            return error_response(status.HTTP_400_BAD_REQUEST, 'invalid_token', 'Refresh token belongs to another user')
        token.blacklist()
        count = 1
    else:
        for outstanding in OutstandingToken.objects.filter(user=request.user):
            _, created = BlacklistedToken.objects.get_or_create(token=outstanding)
            count += int(created)

    log_access(request.user.pk, RESOURCE_SESSION, LOGOUT, f'Revoked: {count}',
               mutating=True, ip_address=client_ip(request))
    return Response({'ok': True, 'blacklisted': count})
