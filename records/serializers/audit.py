import bleach
from rest_framework import serializers

from records.models import AuditRecord


class AuditRecordSerializer(serializers.ModelSerializer):
    actorId = serializers.CharField(source='actor_id')
    resourceType = serializers.CharField(source='resource_type')
    ipAddress = serializers.CharField(source='ip_address')

    class Meta:
        model = AuditRecord
        fields = ['id', 'actorId', 'resourceType', 'action', 'detail', 'ipAddress', 'timestamp']


class AuditQuerySerializer(serializers.Serializer):
    page = serializers.IntegerField(required=False, min_value=1, default=1)
    pageSize = serializers.IntegerField(required=False, min_value=1, max_value=200, default=50)
    actorId = serializers.CharField(required=False, max_length=64)
    resourceType = serializers.CharField(required=False, max_length=64)
    action = serializers.CharField(required=False, max_length=64)
    since = serializers.DateTimeField(required=False)
    until = serializers.DateTimeField(required=False)


class SecurityEventSerializer(serializers.Serializer):
    """Security-relevant events reported by the browser client."""
    EVENT_TYPES = [
        'session_timeout',
        'unauthorized_access_attempt',
        'suspicious_activity',
        'token_refresh_failed',
        'password_change',
        'mfa_challenge',
    ]

    eventType = serializers.ChoiceField(choices=EVENT_TYPES)
    description = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')
    path = serializers.CharField(max_length=300, required=False, allow_blank=True, default='')

    def validate_description(self, v):
        return bleach.clean((v or '').strip(), tags=set(), strip=True)

    def validate_path(self, v):
        return bleach.clean((v or '').strip(), tags=set(), strip=True)
