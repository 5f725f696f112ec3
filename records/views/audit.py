"""
Audit trail endpoints.

Administrators can page through the trail; any signed-in client can
report a security event (session timeout, unexpected 403, ...), which is
stored as an audit record of resource type ``SecurityEvent``.
"""
from __future__ import annotations

import logging
import math

from drf_yasg.utils import swagger_auto_schema
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from records.models import AuditRecord
from records.permissions import IsAuditor
from records.serializers.audit import AuditQuerySerializer, AuditRecordSerializer, SecurityEventSerializer
from records.services.audit import RESOURCE_SECURITY_EVENT, client_ip, log_access

logger = logging.getLogger(__name__)


@swagger_auto_schema(method='get', query_serializer=AuditQuerySerializer)
@api_view(['GET'])
@permission_classes([IsAuditor])
def audit_records(request):
    q = AuditQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data

    qs = AuditRecord.objects.all()
    if vd.get('actorId'):
        qs = qs.filter(actor_id=vd['actorId'])
    if vd.get('resourceType'):
        qs = qs.filter(resource_type=vd['resourceType'])
    if vd.get('action'):
        qs = qs.filter(action=vd['action'])
    if vd.get('since'):
        qs = qs.filter(timestamp__gte=vd['since'])
    if vd.get('until'):
        qs = qs.filter(timestamp__lt=vd['until'])

    page, page_size = vd['page'], vd['pageSize']
    total = qs.count()
    start = (page - 1) * page_size
    return Response({
        'records': AuditRecordSerializer(qs[start:start + page_size] if start < total else [], many=True).data,
        'totalCount': total,
        'pageSize': page_size,
        'currentPage': page,
        'totalPages': math.ceil(total / page_size),
    })


@swagger_auto_schema(method='post', request_body=SecurityEventSerializer)
@api_view(['POST'])
@permission_classes([IsAuthenticated])
def security_event(request):
    s = SecurityEventSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    detail = vd['description']
    if vd['path']:
        detail = f"{detail} (path: {vd['path']})".strip()
    record = log_access(request.user.pk, RESOURCE_SECURITY_EVENT, vd['eventType'], detail,
                        mutating=True, ip_address=client_ip(request))
    logger.warning('Security event %s reported by actor %s', vd['eventType'], request.user.pk)
    return Response({'ok': True, 'id': record.pk}, status=status.HTTP_201_CREATED)
