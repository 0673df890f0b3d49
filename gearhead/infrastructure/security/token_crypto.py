"""
OAuth token encryption.

AES-256-GCM with a random 12-byte IV. The stored value is
base64(IV + ciphertext + tag).
"""

import base64
import binascii
import logging
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from gearhead.config.settings import settings
from gearhead.infrastructure.exceptions import ConfigurationError, ValidationError


logger = logging.getLogger(__name__)

IV_LENGTH = 12
TAG_LENGTH = 16


class TokenCipher:
    """Encrypts and decrypts OAuth tokens with one application key."""

    def __init__(self, key_b64: str):
        try:
            self._key = base64.b64decode(key_b64)
        except (binascii.Error, ValueError) as e:
            raise ConfigurationError("TOKEN_ENCRYPTION_KEY is not valid base64", original_error=e)
        if len(self._key) != 32:
            raise ConfigurationError("TOKEN_ENCRYPTION_KEY must decode to 32 bytes")

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a token.

        Args:
            plaintext: Raw token

        Returns:
            Base64 blob (IV + ciphertext + tag)
        """
        iv = os.urandom(IV_LENGTH)
        encryptor = Cipher(
            algorithms.AES(self._key), modes.GCM(iv), backend=default_backend()
        ).encryptor()
        ciphertext = encryptor.update(plaintext.encode()) + encryptor.finalize()
        return base64.b64encode(iv + ciphertext + encryptor.tag).decode()

    def decrypt(self, blob: str) -> str:
        """
        Decrypt a stored token.

        Raises:
            ValidationError: the blob is malformed or fails authentication
        """
        try:
            raw = base64.b64decode(blob)
            if len(raw) < IV_LENGTH + TAG_LENGTH:
                raise ValueError("ciphertext too short")
            iv = raw[:IV_LENGTH]
            ciphertext = raw[IV_LENGTH:-TAG_LENGTH]
            tag = raw[-TAG_LENGTH:]

            decryptor = Cipher(
                algorithms.AES(self._key), modes.GCM(iv, tag), backend=default_backend()
            ).decryptor()
            return (decryptor.update(ciphertext) + decryptor.finalize()).decode()
        except (InvalidTag, ValueError, binascii.Error) as e:
            logger.error(f"Token decryption failed: {e.__class__.__name__}")
            raise ValidationError("Stored token could not be decrypted", original_error=e)


_token_cipher: Optional[TokenCipher] = None


def get_token_cipher() -> TokenCipher:
    """
    Cipher built from TOKEN_ENCRYPTION_KEY.

    Raises:
        ConfigurationError: the key is not configured
    """
    global _token_cipher
    if _token_cipher is None:
        if not settings.token_encryption_key:
            raise ConfigurationError(
                "Token encryption key not configured",
                missing_keys=["TOKEN_ENCRYPTION_KEY"],
            )
        _token_cipher = TokenCipher(settings.token_encryption_key)
    return _token_cipher
