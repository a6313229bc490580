"""
Database Module
Handles database connections and operations

This module keeps two worlds apart:
1. Platform Database - control-plane metadata (tenants, credentials, flags)
2. Tenant Databases - per-tenant clients created, cached and retired by the registry
"""

# Platform database connection (control plane)
from tenant_broker.database.platform_connection import PlatformDatabaseManager
from tenant_broker.database.control_plane import ControlPlaneAccessor

# Tenant database clients
from tenant_broker.database.client_factory import (
    ClientFactory,
    ErrorObserver,
    LoggingErrorObserver,
    TenantDatabaseClient
)
from tenant_broker.database.tenant_connection import (
    CachedClientEntry,
    ConnectionRegistry
)

__all__ = [
    # Platform database
    "PlatformDatabaseManager",
    "ControlPlaneAccessor",

    # Tenant databases
    "ClientFactory",
    "ErrorObserver",
    "LoggingErrorObserver",
    "TenantDatabaseClient",
    "CachedClientEntry",
    "ConnectionRegistry"
]
