"""
Security Module
Encryption of tenant database credentials
"""

from tenant_broker.security.encryption import (
    CredentialCipher,
    derive_fernet_key,
    generate_fernet_key
)

__all__ = [
    "CredentialCipher",
    "derive_fernet_key",
    "generate_fernet_key"
]
