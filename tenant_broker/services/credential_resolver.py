"""
Credential Resolver
Turns a tenant identity into a validated, decrypted credential bundle
"""

from loguru import logger

from tenant_broker.database.control_plane import ControlPlaneAccessor
from tenant_broker.exceptions import (
    CredentialsNotConfiguredError,
    DecryptionError,
    FeatureNotEnabledError,
    TenantNotFoundError,
)
from tenant_broker.schemas.tenant import (
    CredentialBundle,
    DatabaseKind,
    TenantConnectionRecord,
)
from tenant_broker.security.encryption import CredentialCipher


class CredentialResolver:
    """
    Resolves tenant credentials per database kind.

    No caching: every call reads the control plane again. This is the only
    place where plaintext passwords are materialized.
    """

    def __init__(
        self,
        accessor: ControlPlaneAccessor,
        cipher: CredentialCipher,
        default_port: int = 3306,
    ):
        self._accessor = accessor
        self._cipher = cipher
        self._default_port = default_port

    async def resolve(self, tenant_id: str, kind: DatabaseKind) -> CredentialBundle:
        """
        Resolve the credentials of one tenant database.

        Args:
            tenant_id: Tenant identifier
            kind: Database kind

        Returns:
            Fully populated CredentialBundle

        Raises:
            TenantNotFoundError: Tenant row missing
            FeatureNotEnabledError: Secondary database disabled for the tenant
            CredentialsNotConfiguredError: Host, username or password missing
            DecryptionError: Stored password cannot be decrypted
        """
        record = await self._load_checked(tenant_id, kind)

        try:
            password = self._cipher.decrypt(record.db_password_encrypted)
        except DecryptionError as e:
            logger.error(f"Failed to decrypt database password for tenant {tenant_id} ({kind.value})")
            e.details.setdefault("tenant_id", tenant_id)
            e.details.setdefault("kind", kind.value)
            raise

        return CredentialBundle(
            tenant_id=tenant_id,
            kind=kind,
            host=record.db_host,
            port=record.db_port or self._default_port,
            username=record.db_username,
            password=password,
        )

    async def has_credentials(self, tenant_id: str, kind: DatabaseKind) -> bool:
        """Same presence and feature checks as resolve(), without decrypting or connecting"""
        try:
            await self._load_checked(tenant_id, kind)
        except (TenantNotFoundError, FeatureNotEnabledError, CredentialsNotConfiguredError):
            return False
        return True

    async def _load_checked(self, tenant_id: str, kind: DatabaseKind) -> TenantConnectionRecord:
        record = await self._accessor.load_connection_record(tenant_id)

        if not record.is_enabled(kind):
            raise FeatureNotEnabledError(tenant_id, kind.value)

        if not record.is_configured:
            raise CredentialsNotConfiguredError(tenant_id, kind.value)

        return record
