"""
Control-Plane Accessor
Narrow read of a tenant's stored connection attributes from the platform database
"""

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from tenant_broker.exceptions import TenantNotFoundError
from tenant_broker.models.platform import Tenant
from tenant_broker.schemas.tenant import TenantConnectionRecord


class ControlPlaneAccessor:
    """Reads tenant connection records; never touches tenant business data"""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def load_connection_record(self, tenant_id: str) -> TenantConnectionRecord:
        """
        Load the connection attributes of a tenant.

        Args:
            tenant_id: Tenant identifier

        Returns:
            TenantConnectionRecord (fields may be partially empty)

        Raises:
            TenantNotFoundError: If no tenant row exists
        """
        stmt = select(
            Tenant.id,
            Tenant.db_host,
            Tenant.db_port,
            Tenant.db_username,
            Tenant.db_password_encrypted,
            Tenant.db_secondary_enabled,
        ).where(Tenant.id == tenant_id)

        async with self._session_factory() as session:
            row = (await session.execute(stmt)).first()

        if row is None:
            logger.debug(f"No control-plane row for tenant {tenant_id}")
            raise TenantNotFoundError(tenant_id)

        return TenantConnectionRecord(
            tenant_id=str(row.id),
            db_host=row.db_host,
            db_port=row.db_port,
            db_username=row.db_username,
            db_password_encrypted=row.db_password_encrypted,
            secondary_feature_enabled=bool(row.db_secondary_enabled),
        )
