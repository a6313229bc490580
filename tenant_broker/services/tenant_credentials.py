"""
Tenant Credentials Service
Administration of the database credentials stored for each tenant
"""

from typing import Any, Optional, Union

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenant_broker.config import Settings
from tenant_broker.database.client_factory import ClientFactory
from tenant_broker.database.control_plane import ControlPlaneAccessor
from tenant_broker.exceptions import (
    BrokerError,
    CredentialsNotConfiguredError,
    DecryptionError,
    FeatureNotEnabledError,
    TenantNotFoundError,
)
from tenant_broker.models.platform import Tenant
from tenant_broker.schemas.tenant import (
    ConnectionParams,
    ConnectionTestResult,
    CredentialBundle,
    CredentialSummary,
    DatabaseKind,
)
from tenant_broker.security.encryption import CredentialCipher
from tenant_broker.services.broker import TenantDatabaseBroker
from tenant_broker.services.connection_validator import friendly_connection_error
from tenant_broker.services.credential_resolver import CredentialResolver


class TenantCredentialsService:
    """
    Writes tenant credentials to the control plane.

    Any change that could leave a cached client on stale credentials
    retires the affected clients through the broker.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        cipher: CredentialCipher,
        resolver: CredentialResolver,
        factory: ClientFactory,
        broker: TenantDatabaseBroker,
    ):
        self._session_factory = session_factory
        self._cipher = cipher
        self._resolver = resolver
        self._factory = factory
        self._broker = broker
        self._accessor = ControlPlaneAccessor(session_factory)

    async def _get_tenant(self, session: AsyncSession, tenant_id: str) -> Tenant:
        tenant = await session.get(Tenant, tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        return tenant

    async def update_credentials(
        self,
        tenant_id: Any,
        params: ConnectionParams,
        enable_secondary: Optional[bool] = None,
    ) -> None:
        """
        Store new credentials (used by both databases) and retire cached clients.

        Args:
            tenant_id: Tenant ID
            params: Validated connection parameters (plaintext password)
            enable_secondary: Optionally toggle the secondary database too

        Raises:
            TenantNotFoundError: If the tenant doesn't exist
        """
        tenant_id = str(tenant_id)

        async with self._session_factory() as session:
            tenant = await self._get_tenant(session, tenant_id)
            tenant.db_host = params.host
            tenant.db_port = params.port
            tenant.db_username = params.username
            tenant.db_password_encrypted = self._cipher.encrypt(params.password.get_secret_value())
            if enable_secondary is not None:
                tenant.db_secondary_enabled = enable_secondary
            await session.commit()

        logger.bind(AUDIT=True).info(
            f"AUDIT: update_credentials tenant={tenant_id} host={params.host} "
            f"port={params.port} secondary_enabled={enable_secondary}"
        )

        closed = await self._broker.close_all(tenant_id)
        if closed:
            logger.info(f"Retired {closed} client(s) of tenant {tenant_id} after credential update")

    async def clear_credentials(self, tenant_id: Any) -> None:
        """Remove stored credentials; the tenant becomes 'not configured'"""
        tenant_id = str(tenant_id)

        async with self._session_factory() as session:
            tenant = await self._get_tenant(session, tenant_id)
            tenant.db_host = None
            tenant.db_port = None
            tenant.db_username = None
            tenant.db_password_encrypted = None
            await session.commit()

        logger.bind(AUDIT=True).info(f"AUDIT: clear_credentials tenant={tenant_id}")
        await self._broker.close_all(tenant_id)

    async def set_secondary_enabled(self, tenant_id: Any, enabled: bool) -> None:
        """
        Enable or disable the secondary database for a tenant.
        Disabling closes the tenant's secondary client.
        """
        tenant_id = str(tenant_id)

        async with self._session_factory() as session:
            tenant = await self._get_tenant(session, tenant_id)
            tenant.db_secondary_enabled = enabled
            await session.commit()

        logger.bind(AUDIT=True).info(
            f"AUDIT: toggle_secondary tenant={tenant_id} enabled={enabled}"
        )

        if not enabled:
            await self._broker.close(tenant_id, DatabaseKind.SECONDARY)

    async def get_credentials_summary(self, tenant_id: Any) -> CredentialSummary:
        """Stored credentials with the password masked"""
        record = await self._accessor.load_connection_record(str(tenant_id))
        return CredentialSummary(
            tenant_id=record.tenant_id,
            host=record.db_host,
            port=record.db_port,
            username=record.db_username,
            has_password=bool(record.db_password_encrypted),
            secondary_enabled=record.secondary_feature_enabled,
        )

    async def test_connection(
        self,
        kind: Union[DatabaseKind, str],
        params: Optional[ConnectionParams] = None,
        tenant_id: Optional[Any] = None,
    ) -> ConnectionTestResult:
        """
        Open a throwaway client, run SELECT 1 and close it.

        Uses explicit params when given, otherwise the tenant's stored
        credentials. Nothing is cached.

        Args:
            kind: Database kind to test
            params: Candidate connection parameters
            tenant_id: Tenant whose stored credentials should be tested

        Returns:
            ConnectionTestResult with a readable message
        """
        kind = DatabaseKind.parse(kind)
        database_name = self._factory.database_name(kind)

        if params is None and tenant_id is None:
            raise ValueError("Either params or tenant_id is required")

        try:
            if params is not None:
                bundle = CredentialBundle(
                    tenant_id=str(tenant_id) if tenant_id is not None else "connection-test",
                    kind=kind,
                    host=params.host,
                    port=params.port,
                    username=params.username,
                    password=params.password,
                )
            else:
                bundle = await self._resolver.resolve(str(tenant_id), kind)
        except (
            TenantNotFoundError,
            FeatureNotEnabledError,
            CredentialsNotConfiguredError,
            DecryptionError,
        ) as e:
            return ConnectionTestResult(success=False, message=e.message, error=e.message)

        try:
            client = await self._factory.build(bundle)
        except BrokerError as e:
            message = friendly_connection_error(e, database_name)
            return ConnectionTestResult(success=False, message=message, error=e.message)

        await client.close()
        return ConnectionTestResult(
            success=True,
            message=f"Connection to {database_name} succeeded",
        )


def create_credentials_service(
    settings: Settings,
    session_factory: async_sessionmaker,
    broker: TenantDatabaseBroker,
) -> TenantCredentialsService:
    """Credentials service sharing the broker's resolver and client factory"""
    return TenantCredentialsService(
        session_factory,
        CredentialCipher.from_settings(settings),
        broker.resolver,
        broker.registry.factory,
        broker,
    )
