"""
Unit Tests for the Connection Registry
Tests client reuse, single-flight creation, isolation between tenants and close semantics
"""

import asyncio
import gc

import pytest

from tenant_broker.database.tenant_connection import ConnectionRegistry
from tenant_broker.exceptions import (
    CredentialsNotConfiguredError,
    FeatureNotEnabledError,
    TenantConnectionError,
    TenantNotFoundError,
)
from tenant_broker.schemas.tenant import DatabaseKind

PRIMARY = DatabaseKind.PRIMARY
SECONDARY = DatabaseKind.SECONDARY


class TestRegistryGet:
    """Test suite for ConnectionRegistry.get"""

    @pytest.mark.asyncio
    async def test_reuses_cached_client(self, registry, fake_factory, make_tenant):
        """Test sequential calls return the identical client with one build"""
        tenant_id = await make_tenant()

        first = await registry.get(tenant_id, PRIMARY)
        second = await registry.get(tenant_id, PRIMARY)

        assert first is second
        assert len(fake_factory.builds) == 1
        assert registry.is_ready(tenant_id, PRIMARY)

    @pytest.mark.asyncio
    async def test_client_gets_decrypted_credentials(self, registry, make_tenant):
        """Test the factory receives the plaintext password for the kind"""
        tenant_id = await make_tenant(password="pa55", secondary_enabled=True)

        client = await registry.get(tenant_id, SECONDARY)

        assert client.password == "pa55"
        assert client.database_name == "opytex_db_dfe"

    @pytest.mark.asyncio
    async def test_single_flight(self, registry, fake_factory, make_tenant):
        """Test N concurrent first calls trigger one build and share the client"""
        tenant_id = await make_tenant()
        fake_factory.gate = asyncio.Event()

        tasks = [asyncio.ensure_future(registry.get(tenant_id, PRIMARY)) for _ in range(10)]
        await asyncio.sleep(0.05)
        assert registry.is_creating(tenant_id, PRIMARY)

        fake_factory.gate.set()
        clients = await asyncio.gather(*tasks)

        assert len(fake_factory.builds) == 1
        assert all(c is clients[0] for c in clients)
        assert not registry.is_creating(tenant_id, PRIMARY)

    @pytest.mark.asyncio
    async def test_single_flight_shares_failure(self, registry, fake_factory, make_tenant, connection_refused):
        """Test concurrent first calls all fail with the same error and nothing is cached"""
        tenant_id = await make_tenant()
        fake_factory.gate = asyncio.Event()
        fake_factory.fail_with = connection_refused

        tasks = [asyncio.ensure_future(registry.get(tenant_id, PRIMARY)) for _ in range(5)]
        await asyncio.sleep(0.05)
        fake_factory.gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert len(fake_factory.builds) == 1
        assert all(r is connection_refused for r in results)
        assert not registry.is_ready(tenant_id, PRIMARY)
        assert not registry.is_creating(tenant_id, PRIMARY)

    @pytest.mark.asyncio
    async def test_failed_creation_is_retried(self, registry, fake_factory, make_tenant, connection_refused):
        """Test a failure leaves the key Absent so the next call retries"""
        tenant_id = await make_tenant()
        fake_factory.fail_with = connection_refused

        with pytest.raises(TenantConnectionError):
            await registry.get(tenant_id, PRIMARY)

        fake_factory.fail_with = None
        client = await registry.get(tenant_id, PRIMARY)

        assert client is not None
        assert len(fake_factory.builds) == 2

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_creation(self, registry, fake_factory, make_tenant):
        """Test cancelling one waiter leaves the shared creation running"""
        tenant_id = await make_tenant()
        fake_factory.gate = asyncio.Event()

        impatient = asyncio.ensure_future(registry.get(tenant_id, PRIMARY))
        patient = asyncio.ensure_future(registry.get(tenant_id, PRIMARY))
        await asyncio.sleep(0.05)
        impatient.cancel()
        fake_factory.gate.set()

        client = await patient
        with pytest.raises(asyncio.CancelledError):
            await impatient

        assert registry.is_ready(tenant_id, PRIMARY)
        assert len(fake_factory.builds) == 1
        assert client is fake_factory.clients[0]

    @pytest.mark.asyncio
    async def test_tenant_isolation(self, registry, fake_factory, make_tenant):
        """Test two tenants never share a client"""
        t1 = await make_tenant(name="One", username="one")
        t2 = await make_tenant(name="Two", username="two")

        c1, c2 = await asyncio.gather(registry.get(t1, PRIMARY), registry.get(t2, PRIMARY))

        assert c1 is not c2
        assert c1.username == "one"
        assert c2.username == "two"
        assert len(fake_factory.builds) == 2

    @pytest.mark.asyncio
    async def test_kinds_are_separate_keys(self, registry, make_tenant):
        """Test primary and secondary of one tenant are distinct clients"""
        tenant_id = await make_tenant(secondary_enabled=True)

        primary = await registry.get(tenant_id, PRIMARY)
        secondary = await registry.get(tenant_id, SECONDARY)

        assert primary is not secondary
        assert primary.database_name == "bussolla_db"

    @pytest.mark.asyncio
    async def test_resolver_errors_not_cached(self, registry, fake_factory, make_tenant):
        """Test resolution failures never reach the factory or the cache"""
        unconfigured = await make_tenant(host=None)
        gated = await make_tenant(secondary_enabled=False)

        with pytest.raises(TenantNotFoundError):
            await registry.get("missing", PRIMARY)
        with pytest.raises(CredentialsNotConfiguredError):
            await registry.get(unconfigured, PRIMARY)
        with pytest.raises(FeatureNotEnabledError):
            await registry.get(gated, SECONDARY)

        assert fake_factory.builds == []
        assert registry.list_connections() == []


class TestRegistryClose:
    """Test suite for ConnectionRegistry close operations"""

    @pytest.mark.asyncio
    async def test_close_then_reresolve(self, registry, fake_factory, make_tenant):
        """Test a closed client is disposed and a fresh one built next time"""
        tenant_id = await make_tenant()
        old = await registry.get(tenant_id, PRIMARY)

        assert await registry.close(tenant_id, PRIMARY) is True
        assert old.closed
        assert not registry.is_ready(tenant_id, PRIMARY)

        new = await registry.get(tenant_id, PRIMARY)
        assert new is not old
        assert len(fake_factory.builds) == 2

    @pytest.mark.asyncio
    async def test_close_absent_is_noop(self, registry):
        assert await registry.close("nobody", PRIMARY) is False

    @pytest.mark.asyncio
    async def test_close_waits_for_creation(self, registry, fake_factory, make_tenant):
        """Test a close during creation closes the client once it exists"""
        tenant_id = await make_tenant()
        fake_factory.gate = asyncio.Event()

        getter = asyncio.ensure_future(registry.get(tenant_id, PRIMARY))
        await asyncio.sleep(0.05)
        closer = asyncio.ensure_future(registry.close(tenant_id, PRIMARY))
        await asyncio.sleep(0.05)
        assert not closer.done()

        fake_factory.gate.set()
        client = await getter

        assert await closer is True
        assert client.closed
        assert not registry.is_ready(tenant_id, PRIMARY)

    @pytest.mark.asyncio
    async def test_close_after_failed_creation(self, registry, fake_factory, make_tenant, connection_refused):
        """Test a close racing a failing creation returns False without raising"""
        tenant_id = await make_tenant()
        fake_factory.gate = asyncio.Event()
        fake_factory.fail_with = connection_refused

        getter = asyncio.ensure_future(registry.get(tenant_id, PRIMARY))
        await asyncio.sleep(0.05)
        closer = asyncio.ensure_future(registry.close(tenant_id, PRIMARY))
        fake_factory.gate.set()

        assert await closer is False
        with pytest.raises(TenantConnectionError):
            await getter

    @pytest.mark.asyncio
    async def test_close_all_for_tenant(self, registry, make_tenant):
        """Test close_all only retires the given tenant's clients"""
        t1 = await make_tenant(secondary_enabled=True)
        t2 = await make_tenant(name="Other")
        await registry.get(t1, PRIMARY)
        await registry.get(t1, SECONDARY)
        other = await registry.get(t2, PRIMARY)

        assert await registry.close_all(t1) == 2
        assert not registry.is_ready(t1, PRIMARY)
        assert not registry.is_ready(t1, SECONDARY)
        assert registry.is_ready(t2, PRIMARY)
        assert not other.closed

    @pytest.mark.asyncio
    async def test_close_everything(self, registry, fake_factory, make_tenant):
        t1 = await make_tenant()
        t2 = await make_tenant(name="Other")
        await registry.get(t1, PRIMARY)
        await registry.get(t2, PRIMARY)

        assert await registry.close_everything() == 2
        assert registry.list_connections() == []
        assert all(c.closed for c in fake_factory.clients)

    @pytest.mark.asyncio
    async def test_get_after_close_everything_fails(self, registry, fake_factory, make_tenant):
        """Test no pool is built once the registry has been shut down"""
        tenant_id = await make_tenant()
        await registry.get(tenant_id, PRIMARY)
        await registry.close_everything()

        with pytest.raises(TenantConnectionError, match="shut down"):
            await registry.get(tenant_id, PRIMARY)

        assert len(fake_factory.builds) == 1
        assert registry.list_connections() == []

    @pytest.mark.asyncio
    async def test_close_everything_during_creation(self, registry, fake_factory, make_tenant):
        """Test a creation in flight at shutdown is closed, not left cached"""
        tenant_id = await make_tenant()
        fake_factory.gate = asyncio.Event()

        getter = asyncio.ensure_future(registry.get(tenant_id, PRIMARY))
        await asyncio.sleep(0.05)
        closer = asyncio.ensure_future(registry.close_everything())
        await asyncio.sleep(0.05)
        fake_factory.gate.set()

        client = await getter
        assert await closer == 1
        assert client.closed
        assert registry.list_connections() == []

    @pytest.mark.asyncio
    async def test_failure_with_only_cancelled_waiter_is_retrieved(
        self, registry, fake_factory, make_tenant, connection_refused
    ):
        """Test a failed creation nobody awaits anymore is not reported as unretrieved"""
        tenant_id = await make_tenant()
        fake_factory.gate = asyncio.Event()
        fake_factory.fail_with = connection_refused

        loop = asyncio.get_running_loop()
        reported = []
        previous_handler = loop.get_exception_handler()
        loop.set_exception_handler(lambda _loop, context: reported.append(context))
        try:
            waiter = asyncio.ensure_future(registry.get(tenant_id, PRIMARY))
            await asyncio.sleep(0.05)
            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter
            del waiter

            fake_factory.gate.set()
            while registry.is_creating(tenant_id, PRIMARY):
                await asyncio.sleep(0.01)
            await asyncio.sleep(0.01)
            gc.collect()
        finally:
            loop.set_exception_handler(previous_handler)

        assert not [c for c in reported if "never retrieved" in c.get("message", "")]
        assert not registry.is_ready(tenant_id, PRIMARY)

    @pytest.mark.asyncio
    async def test_close_survives_dispose_error(self, registry, fake_factory, make_tenant):
        """Test an error while disposing still evicts the entry"""
        tenant_id = await make_tenant()
        client = await registry.get(tenant_id, PRIMARY)

        async def broken_close():
            raise RuntimeError("socket already gone")

        client.close = broken_close

        assert await registry.close(tenant_id, PRIMARY) is True
        assert not registry.is_ready(tenant_id, PRIMARY)


class TestRegistryStatus:
    """Test suite for connection listing and stats"""

    @pytest.mark.asyncio
    async def test_stats(self, registry, make_tenant):
        t1 = await make_tenant(secondary_enabled=True)
        t2 = await make_tenant(name="Other")
        await registry.get(t1, PRIMARY)
        await registry.get(t1, SECONDARY)
        await registry.get(t2, PRIMARY)

        stats = registry.stats()

        assert stats.total == 3
        assert stats.pool_size == 5
        assert stats.by_tenant == {t1: 2, t2: 1}
        assert stats.by_kind == {"primary": 2, "secondary": 1}

    @pytest.mark.asyncio
    async def test_list_and_get_connection(self, registry, make_tenant):
        tenant_id = await make_tenant()
        await registry.get(tenant_id, PRIMARY)

        infos = registry.list_connections()
        info = registry.get_connection(tenant_id, PRIMARY)

        assert len(infos) == 1
        assert info.tenant_id == tenant_id
        assert info.kind is PRIMARY
        assert info.database_name == "bussolla_db"
        assert info.last_used_at >= info.created_at
        assert registry.get_connection(tenant_id, SECONDARY) is None

    @pytest.mark.asyncio
    async def test_empty_stats(self, registry):
        stats = registry.stats()

        assert stats.total == 0
        assert stats.by_kind == {"primary": 0, "secondary": 0}

    @pytest.mark.asyncio
    async def test_registries_are_isolated(self, resolver, fake_factory, make_tenant):
        """Test separately constructed registries share no state"""
        tenant_id = await make_tenant()
        first = ConnectionRegistry(resolver, fake_factory)
        second = ConnectionRegistry(resolver, fake_factory)

        await first.get(tenant_id, PRIMARY)

        assert first.is_ready(tenant_id, PRIMARY)
        assert not second.is_ready(tenant_id, PRIMARY)
