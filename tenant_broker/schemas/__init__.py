"""
Schemas Package
"""

from tenant_broker.schemas.tenant import (
    DatabaseKind,
    TenantConnectionRecord,
    CredentialBundle,
    ConnectionParams,
    ValidationResult,
    CredentialSummary,
    ConnectionTestResult,
    ConnectionInfo,
    ConnectionStats,
)

__all__ = [
    "DatabaseKind",
    "TenantConnectionRecord",
    "CredentialBundle",
    "ConnectionParams",
    "ValidationResult",
    "CredentialSummary",
    "ConnectionTestResult",
    "ConnectionInfo",
    "ConnectionStats",
]
