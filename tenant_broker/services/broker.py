"""
Tenant Database Broker
The single entry point the rest of the application uses to reach tenant databases
"""

from typing import Any, List, Optional, Union

from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from tenant_broker.config import Settings
from tenant_broker.database.client_factory import (
    ClientFactory,
    ErrorObserver,
    TenantDatabaseClient,
)
from tenant_broker.database.control_plane import ControlPlaneAccessor
from tenant_broker.database.tenant_connection import ConnectionRegistry
from tenant_broker.schemas.tenant import ConnectionInfo, ConnectionStats, DatabaseKind
from tenant_broker.security.encryption import CredentialCipher
from tenant_broker.services.credential_resolver import CredentialResolver


KindLike = Union[DatabaseKind, str]


class TenantDatabaseBroker:
    """
    Facade over the credential resolver and the connection registry.

    Usage:
        client = await broker.resolve_client(tenant_id, "primary")
        async with client.session() as session:
            ...

    Clients returned here belong to the broker; only close_all() (or
    shutdown()) retires them.
    """

    def __init__(self, resolver: CredentialResolver, registry: ConnectionRegistry):
        self._resolver = resolver
        self._registry = registry

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def resolver(self) -> CredentialResolver:
        return self._resolver

    async def resolve_client(self, tenant_id: Any, kind: KindLike) -> TenantDatabaseClient:
        """
        Get a live client for a tenant database.

        Raises:
            TenantNotFoundError, FeatureNotEnabledError, CredentialsNotConfiguredError,
            DecryptionError, TenantConnectionError
        """
        return await self._registry.get(str(tenant_id), DatabaseKind.parse(kind))

    async def has_credentials(self, tenant_id: Any, kind: KindLike) -> bool:
        """Whether the tenant is configured (and enabled) for the kind; never connects"""
        return await self._resolver.has_credentials(str(tenant_id), DatabaseKind.parse(kind))

    async def close(self, tenant_id: Any, kind: KindLike) -> bool:
        return await self._registry.close(str(tenant_id), DatabaseKind.parse(kind))

    async def close_all(self, tenant_id: Any) -> int:
        """Retire every client of a tenant (tenant deleted or credentials changed)"""
        return await self._registry.close_all(str(tenant_id))

    async def shutdown(self) -> int:
        return await self._registry.close_everything()

    def list_connections(self) -> List[ConnectionInfo]:
        return self._registry.list_connections()

    def stats(self) -> ConnectionStats:
        return self._registry.stats()


def create_broker(
    settings: Settings,
    session_factory: async_sessionmaker,
    error_observer: Optional[ErrorObserver] = None,
) -> TenantDatabaseBroker:
    """
    Wire the broker from configuration and a platform session factory.

    Args:
        settings: Application settings
        session_factory: Session factory of the platform (control-plane) database
        error_observer: Optional observer for tenant engine errors

    Returns:
        TenantDatabaseBroker with its own, empty registry
    """
    resolver = CredentialResolver(
        ControlPlaneAccessor(session_factory),
        CredentialCipher.from_settings(settings),
        default_port=settings.tenant_db_default_port,
    )
    factory = ClientFactory(settings, error_observer=error_observer)
    registry = ConnectionRegistry(resolver, factory)

    logger.info(
        f"Tenant database broker ready (pool_size={settings.tenant_db_pool_size}, "
        f"connect_timeout={settings.tenant_db_connect_timeout}s)"
    )
    return TenantDatabaseBroker(resolver, registry)
