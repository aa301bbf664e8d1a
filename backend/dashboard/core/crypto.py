"""
AES-256-GCM helpers for OAuth tokens and mail credentials at rest.

Ciphertext, IV and authentication tag are stored separately as hex strings.
"""
import os
import re
from dataclasses import dataclass

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from dashboard.core.config import get_settings

IV_LENGTH = 16
AUTH_TAG_LENGTH = 16
KEY_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


@dataclass
class EncryptedData:
    encrypted: str
    iv: str
    auth_tag: str


def _get_key() -> bytes:
    key = get_settings().MAIL_ENCRYPTION_KEY
    if not key:
        raise ValueError("MAIL_ENCRYPTION_KEY is not configured")
    if not KEY_PATTERN.match(key):
        raise ValueError("MAIL_ENCRYPTION_KEY must be 64 hex characters (32 bytes)")
    return bytes.fromhex(key)


def encrypt(plaintext: str) -> EncryptedData:
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(_get_key()).encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-AUTH_TAG_LENGTH], sealed[-AUTH_TAG_LENGTH:]
    return EncryptedData(encrypted=ciphertext.hex(), iv=iv.hex(), auth_tag=tag.hex())


def decrypt(encrypted: str, iv: str, auth_tag: str) -> str:
    """Raises cryptography.exceptions.InvalidTag when data or tag was tampered with."""
    sealed = bytes.fromhex(encrypted) + bytes.fromhex(auth_tag)
    plaintext = AESGCM(_get_key()).decrypt(bytes.fromhex(iv), sealed, None)
    return plaintext.decode("utf-8")


def generate_encryption_key() -> str:
    return os.urandom(32).hex()
