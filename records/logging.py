"""
Logging helpers that keep protected health information out of log output.

Operator logs carry request ids and actor ids, never patient demographics.
``PHIRedactionFilter`` scrubs values passed through ``extra={...}`` whose
key names patient-identifying data, and the JSON formatter is used in
production so the log pipeline can index the remaining fields.
"""
from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone

SENSITIVE_FIELDS = {
    'password',
    'token',
    'refresh',
    'access',
    'secret',
    'first_name',
    'last_name',
    'firstname',
    'lastname',
    'name',
    'email',
    'phone',
    'address',
    'date_of_birth',
    'dateofbirth',
    'ssn',
    'insurance',
    'emergency_contact',
    'emergencycontact',
    'notes',
}

REDACTED = '[REDACTED]'

# Attributes every LogRecord carries; anything else came in through extra={}
_RESERVED = set(vars(logging.makeLogRecord({}))) | {'message', 'asctime', 'request_id', 'actor_id'}

_context = threading.local()


def bind_request_context(request_id: str | None = None, actor_id: str | None = None) -> None:
    _context.request_id = request_id
    _context.actor_id = actor_id


def clear_request_context() -> None:
    _context.request_id = None
    _context.actor_id = None


def _redact(value):
    if isinstance(value, dict):
        return {
            k: REDACTED if str(k).lower() in SENSITIVE_FIELDS else _redact(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_redact(v) for v in value]
    return value


class RequestContextFilter(logging.Filter):
    """Attach the current request id and actor id to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = getattr(_context, 'request_id', None) or '-'
        record.actor_id = getattr(_context, 'actor_id', None) or '-'
        return True


class PHIRedactionFilter(logging.Filter):
    """Replace sensitive ``extra`` values with a placeholder."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in list(vars(record).items()):
            if key in _RESERVED or key.startswith('_'):
                continue
            if key.lower() in SENSITIVE_FIELDS:
                setattr(record, key, REDACTED)
            else:
                setattr(record, key, _redact(value))
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'request_id': getattr(record, 'request_id', '-'),
            'actor_id': getattr(record, 'actor_id', '-'),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED and not key.startswith('_') and key not in payload:
                payload[key] = value
        if record.exc_info:
            payload['exception'] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)
