"""
Broker Exception Classes

Error taxonomy for resolving, establishing and retiring tenant database clients.
None of these ever carry a plaintext password in their message or details.
"""

from typing import Any, Dict, Optional


class BrokerError(Exception):
    """Base exception for tenant database broker operations"""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class TenantNotFoundError(BrokerError):
    """Raised when the control plane has no row for the tenant"""

    status_code = 404

    def __init__(self, tenant_id: str, details: Optional[Dict[str, Any]] = None):
        self.tenant_id = tenant_id
        super().__init__(
            f"Tenant {tenant_id} not found",
            {"tenant_id": tenant_id, **(details or {})},
        )


class CredentialsNotConfiguredError(BrokerError):
    """Raised when host, username or password is missing for the tenant"""

    status_code = 409

    def __init__(self, tenant_id: str, kind: str, details: Optional[Dict[str, Any]] = None):
        self.tenant_id = tenant_id
        self.kind = kind
        super().__init__(
            f"Database credentials not configured for tenant {tenant_id} ({kind})",
            {"tenant_id": tenant_id, "kind": kind, **(details or {})},
        )


class FeatureNotEnabledError(BrokerError):
    """Raised when the secondary database is requested but disabled for the tenant"""

    status_code = 403

    def __init__(self, tenant_id: str, kind: str, details: Optional[Dict[str, Any]] = None):
        self.tenant_id = tenant_id
        self.kind = kind
        super().__init__(
            f"Database '{kind}' is not enabled for tenant {tenant_id}",
            {"tenant_id": tenant_id, "kind": kind, **(details or {})},
        )


class DecryptionError(BrokerError):
    """Raised when a stored password cannot be decrypted (corrupt or wrong key)"""

    def __init__(
        self,
        message: str = "Failed to decrypt credential",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)


class TenantConnectionError(BrokerError):
    """Raised when the tenant database cannot be reached or rejects the login"""

    status_code = 503

    def __init__(
        self,
        message: str = "Tenant database connection error",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)


class PoolExhaustedError(BrokerError):
    """Raised when every pooled connection of a tenant client stays busy past the pool timeout"""

    status_code = 503

    def __init__(
        self,
        message: str = "Tenant connection pool exhausted",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
