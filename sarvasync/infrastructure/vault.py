# sarvasync/infrastructure/vault.py
"""AES-256-GCM encryption of provider credentials before they are persisted.

Envelope format: ``{iv_hex}:{tag_hex}:{ciphertext_hex}``.
"""
import os
from functools import lru_cache

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from sarvasync.config import get_settings
from sarvasync.errors import ConfigurationError, FormatError, IntegrityError

logger = structlog.get_logger(__name__)

IV_LENGTH = 16
TAG_LENGTH = 16
KEY_HEX_LENGTH = 64
DELIMITER = ":"


class CredentialVault:
    def __init__(self, key_hex: str):
        if not key_hex or len(key_hex) != KEY_HEX_LENGTH:
            raise ConfigurationError("OAUTH_TOKEN_ENCRYPTION_KEY must be a 64-character hex string.")
        try:
            key = bytes.fromhex(key_hex)
        except ValueError as e:
            raise ConfigurationError("OAUTH_TOKEN_ENCRYPTION_KEY must be a 64-character hex string.") from e
        self._aesgcm = AESGCM(key)

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(IV_LENGTH)
        sealed = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return DELIMITER.join((iv.hex(), tag.hex(), ciphertext.hex()))

    def decrypt(self, envelope: str) -> str:
        iv, tag, ciphertext = self._split(envelope)
        try:
            plaintext = self._aesgcm.decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            logger.warning("vault_decrypt_integrity_failure")
            raise IntegrityError() from e
        return plaintext.decode("utf-8")

    @staticmethod
    def _split(envelope: str) -> tuple[bytes, bytes, bytes]:
        if not isinstance(envelope, str):
            raise FormatError()
        parts = envelope.split(DELIMITER)
        # the ciphertext segment is legitimately empty for an empty plaintext
        if len(parts) != 3 or not parts[0] or not parts[1]:
            raise FormatError()
        try:
            iv, tag, ciphertext = (bytes.fromhex(p) for p in parts)
        except ValueError as e:
            raise FormatError() from e
        if len(iv) != IV_LENGTH or len(tag) != TAG_LENGTH:
            raise FormatError()
        return iv, tag, ciphertext


@lru_cache
def get_vault() -> CredentialVault:
    return CredentialVault(get_settings().OAUTH_TOKEN_ENCRYPTION_KEY)
