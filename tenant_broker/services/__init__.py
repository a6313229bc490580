"""
Services Package
Business logic for resolving and administering tenant database connections
"""

from tenant_broker.services.credential_resolver import CredentialResolver
from tenant_broker.services.broker import TenantDatabaseBroker, create_broker
from tenant_broker.services.connection_validator import (
    validate_connection_params,
    friendly_connection_error
)
from tenant_broker.services.tenant_credentials import (
    TenantCredentialsService,
    create_credentials_service
)

__all__ = [
    "CredentialResolver",
    "TenantDatabaseBroker",
    "create_broker",
    "validate_connection_params",
    "friendly_connection_error",
    "TenantCredentialsService",
    "create_credentials_service"
]
