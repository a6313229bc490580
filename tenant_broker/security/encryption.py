"""
Encryption Module
Symmetric encryption of tenant database passwords at rest using Fernet
"""

import base64
import binascii
import hashlib

from cryptography.fernet import Fernet, InvalidToken
from loguru import logger

from tenant_broker.config import Settings
from tenant_broker.exceptions import DecryptionError


def derive_fernet_key(raw_key: str) -> bytes:
    """
    Turn the configured secret into a valid Fernet key.

    A secret that already is a Fernet key (44 chars, URL-safe base64 of
    32 bytes) is used unchanged; anything else is stretched with SHA-256.

    Args:
        raw_key: Secret from configuration

    Returns:
        32-byte URL-safe base64-encoded key

    Example:
        >>> len(base64.urlsafe_b64decode(derive_fernet_key("secret")))
        32
    """
    if not raw_key:
        raise ValueError("Encryption key must not be empty")

    if len(raw_key) == 44:
        try:
            if len(base64.urlsafe_b64decode(raw_key)) == 32:
                return raw_key.encode()
        except (binascii.Error, ValueError):
            pass

    hash_bytes = hashlib.sha256(raw_key.encode()).digest()
    logger.debug("Derived encryption key from configuration")
    return base64.urlsafe_b64encode(hash_bytes)


class CredentialCipher:
    """
    Encrypts and decrypts tenant database passwords.

    Pure and synchronous: no I/O, no state beyond the key. The key is a
    process-wide secret supplied through configuration and is never stored
    next to the ciphertext it protects.
    """

    def __init__(self, secret: str):
        self._fernet = Fernet(derive_fernet_key(secret))

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialCipher":
        if settings.encryption_key.startswith("change-me") and not settings.is_development:
            logger.warning("ENCRYPTION_KEY is still the placeholder value")
        return cls(settings.encryption_key)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a password.

        Args:
            plaintext: Password in clear text

        Returns:
            Fernet token as text

        Example:
            >>> cipher = CredentialCipher("secret")
            >>> cipher.decrypt(cipher.encrypt("my-password"))
            'my-password'
        """
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a Fernet token produced by :meth:`encrypt`.

        Raises:
            DecryptionError: If the token is malformed or was produced under another key
        """
        try:
            return self._fernet.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except InvalidToken as e:
            raise DecryptionError(
                "Invalid token or wrong encryption key"
            ) from e
        except (UnicodeDecodeError, UnicodeEncodeError) as e:
            raise DecryptionError("Ciphertext is not valid text") from e


def generate_fernet_key() -> str:
    """
    Generate a new Fernet encryption key for ENCRYPTION_KEY.

    Example:
        >>> len(generate_fernet_key())
        44
    """
    return Fernet.generate_key().decode()
