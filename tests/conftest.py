"""
Shared fixtures: an in-memory control-plane database and a fake client factory
"""

import asyncio
from typing import List, Optional

import pytest
import pytest_asyncio

from tenant_broker.config import Settings
from tenant_broker.database.control_plane import ControlPlaneAccessor
from tenant_broker.database.platform_connection import PlatformDatabaseManager
from tenant_broker.database.tenant_connection import ConnectionRegistry
from tenant_broker.exceptions import TenantConnectionError
from tenant_broker.models.platform import Tenant
from tenant_broker.schemas.tenant import CredentialBundle, DatabaseKind
from tenant_broker.security.encryption import CredentialCipher
from tenant_broker.services.broker import TenantDatabaseBroker
from tenant_broker.services.credential_resolver import CredentialResolver


TEST_SECRET = "unit-test-encryption-secret"


class FakeClient:
    """Stands in for TenantDatabaseClient; records close() calls"""

    def __init__(self, bundle: CredentialBundle, database_name: str):
        self.tenant_id = bundle.tenant_id
        self.kind = bundle.kind
        self.database_name = database_name
        self.username = bundle.username
        self.password = bundle.password.get_secret_value()
        self.closed = False
        self.close_calls = 0

    async def close(self):
        self.close_calls += 1
        self.closed = True


class FakeClientFactory:
    """
    Counts build() calls instead of opening sockets.

    Set `gate` to an asyncio.Event to hold builds until it is set, and
    `fail_with` to make builds raise.
    """

    def __init__(self, pool_size: int = 5):
        self.pool_size = pool_size
        self.builds: List[CredentialBundle] = []
        self.clients: List[FakeClient] = []
        self.gate: Optional[asyncio.Event] = None
        self.fail_with: Optional[Exception] = None

    def database_name(self, kind: DatabaseKind) -> str:
        return "opytex_db_dfe" if kind is DatabaseKind.SECONDARY else "bussolla_db"

    async def build(self, bundle: CredentialBundle) -> FakeClient:
        self.builds.append(bundle)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        client = FakeClient(bundle, self.database_name(bundle.kind))
        self.clients.append(client)
        return client


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        environment="testing",
        platform_database_url="sqlite+aiosqlite:///:memory:",
        encryption_key=TEST_SECRET,
        tenant_db_pool_size=3,
        tenant_db_pool_timeout=1.0,
        tenant_db_connect_timeout=1.0,
        log_to_file=False,
    )


@pytest.fixture
def cipher(settings):
    return CredentialCipher.from_settings(settings)


@pytest_asyncio.fixture
async def platform_db(settings):
    manager = PlatformDatabaseManager(settings)
    manager.initialize()
    await manager.create_tables()
    yield manager
    await manager.close()


@pytest.fixture
def session_factory(platform_db):
    return platform_db.session_factory


@pytest.fixture
def make_tenant(session_factory, cipher):
    """Insert a tenant row and return its id"""

    async def _make(
        name: str = "Acme",
        host: Optional[str] = "db.acme.test",
        port: Optional[int] = 3306,
        username: Optional[str] = "acme_app",
        password: Optional[str] = "s3cret-pass",
        secondary_enabled: bool = False,
    ) -> str:
        tenant = Tenant(
            name=name,
            db_host=host,
            db_port=port,
            db_username=username,
            db_password_encrypted=cipher.encrypt(password) if password else None,
            db_secondary_enabled=secondary_enabled,
        )
        async with session_factory() as session:
            session.add(tenant)
            await session.commit()
        return tenant.id

    return _make


@pytest.fixture
def resolver(session_factory, cipher):
    return CredentialResolver(ControlPlaneAccessor(session_factory), cipher, default_port=3306)


@pytest.fixture
def fake_factory():
    return FakeClientFactory()


@pytest.fixture
def registry(resolver, fake_factory):
    return ConnectionRegistry(resolver, fake_factory)


@pytest.fixture
def broker(resolver, registry):
    return TenantDatabaseBroker(resolver, registry)


@pytest.fixture
def connection_refused():
    return TenantConnectionError(
        "Failed to connect to bussolla_db: connection refused",
        details={"tenant_id": "t", "kind": "primary"},
    )
