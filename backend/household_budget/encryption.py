"""AES-256-GCM envelope encryption for stored Plaid access tokens.

Payload layout (base64): ``salt(32) | iv(16) | tag(16) | ciphertext``.
A master key is derived once from the configured secret; each call then
derives a per-message key from the master key and a fresh random salt.
"""

import base64
import hashlib
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .config import settings

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
IV_LENGTH = 16
TAG_LENGTH = 16
SALT_LENGTH = 32
ITERATIONS = 100_000
MASTER_SALT = hashlib.sha256(b"plaid-token-salt").digest()

DECRYPT_FAILED = "Failed to decrypt data - token may be corrupted or tampered with"


class EncryptionError(Exception):
    pass


def _pbkdf2(secret: bytes, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=KEY_LENGTH, salt=salt, iterations=ITERATIONS)
    return kdf.derive(secret)


class EncryptionService:
    def __init__(self, secret: str | None = None) -> None:
        secret = secret or settings.token_secret
        if not secret:
            raise EncryptionError("Encryption secret is not configured")
        self._master_key = _pbkdf2(secret.encode("utf-8"), MASTER_SALT)

    def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            raise EncryptionError("Cannot encrypt empty string")
        try:
            salt = os.urandom(SALT_LENGTH)
            iv = os.urandom(IV_LENGTH)
            key = _pbkdf2(self._master_key, salt)
            sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
        except Exception as exc:
            logger.error("encryption failed: %s", exc.__class__.__name__)
            raise EncryptionError("Failed to encrypt data") from exc
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.b64encode(salt + iv + tag + ciphertext).decode("ascii")

    def decrypt(self, payload: str) -> str:
        if not payload:
            raise EncryptionError("Cannot decrypt empty string")
        try:
            raw = base64.b64decode(payload.encode("ascii"), validate=True)
        except (ValueError, UnicodeEncodeError) as exc:
            raise EncryptionError(DECRYPT_FAILED) from exc
        header = SALT_LENGTH + IV_LENGTH + TAG_LENGTH
        if len(raw) <= header:
            raise EncryptionError(DECRYPT_FAILED)
        salt = raw[:SALT_LENGTH]
        iv = raw[SALT_LENGTH : SALT_LENGTH + IV_LENGTH]
        tag = raw[SALT_LENGTH + IV_LENGTH : header]
        ciphertext = raw[header:]
        key = _pbkdf2(self._master_key, salt)
        try:
            plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
            return plaintext.decode("utf-8")
        except (InvalidTag, UnicodeDecodeError) as exc:
            raise EncryptionError(DECRYPT_FAILED) from exc

    def validate(self) -> bool:
        probe = "encryption-self-test"
        try:
            return self.decrypt(self.encrypt(probe)) == probe
        except EncryptionError:
            logger.exception("encryption self-test failed")
            return False


_default_service: EncryptionService | None = None


def get_encryption_service() -> EncryptionService:
    global _default_service
    if _default_service is None:
        _default_service = EncryptionService()
    return _default_service


def encrypt(plaintext: str) -> str:
    return get_encryption_service().encrypt(plaintext)


def decrypt(payload: str) -> str:
    return get_encryption_service().decrypt(payload)


def validate_encryption() -> bool:
    return get_encryption_service().validate()
