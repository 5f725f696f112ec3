"""
Field-level protection for highly sensitive identifiers (SSN).

Values are sealed with AES-GCM under a key derived from
``settings.PATIENT_DATA_KEY``.  The stored token is
``base64(nonce | tag | ciphertext)``.
"""
import base64
import hashlib

from Crypto.Cipher import AES
from Crypto.Random import get_random_bytes
from django.conf import settings

NONCE_SIZE = 12
TAG_SIZE = 16
PURPOSE = b'PatientData'


def _key() -> bytes:
    return hashlib.sha256(PURPOSE + settings.PATIENT_DATA_KEY.encode('utf-8')).digest()


def protect(value: str) -> str:
    if not value:
        return ''
    cipher = AES.new(_key(), AES.MODE_GCM, nonce=get_random_bytes(NONCE_SIZE), mac_len=TAG_SIZE)
    ciphertext, tag = cipher.encrypt_and_digest(value.encode('utf-8'))
    return base64.b64encode(cipher.nonce + tag + ciphertext).decode('ascii')


def unprotect(token: str) -> str:
    """Reverse :func:`protect`.  Raises ``ValueError`` on a tampered token."""
    if not token:
        return ''
    raw = base64.b64decode(token)
    nonce, tag, ciphertext = raw[:NONCE_SIZE], raw[NONCE_SIZE:NONCE_SIZE + TAG_SIZE], raw[NONCE_SIZE + TAG_SIZE:]
    cipher = AES.new(_key(), AES.MODE_GCM, nonce=nonce, mac_len=TAG_SIZE)
    return cipher.decrypt_and_verify(ciphertext, tag).decode('utf-8')


def mask_ssn(last4: str) -> str:
    return f'***-**-{last4}' if last4 else ''
