"""
Unit Tests for the Control-Plane Models and Platform Database Manager
Tests the tenants table, timestamp columns and the platform engine lifecycle
"""

import asyncio

import pytest
from sqlalchemy import update

from tenant_broker.database.platform_connection import PlatformDatabaseManager
from tenant_broker.models.platform import Tenant


class TestTenantModel:
    """Test suite for the Tenant model"""

    def test_table_columns(self):
        """Test the tenants table holds identity, timestamps and connection attributes only"""
        assert Tenant.__tablename__ == "tenants"
        assert set(Tenant.__table__.columns.keys()) == {
            "id",
            "created_at",
            "updated_at",
            "name",
            "db_host",
            "db_port",
            "db_username",
            "db_password_encrypted",
            "db_secondary_enabled",
        }

    @pytest.mark.asyncio
    async def test_defaults(self, session_factory):
        async with session_factory() as session:
            tenant = Tenant(name="Defaults")
            session.add(tenant)
            await session.commit()

        assert len(tenant.id) == 36
        assert tenant.created_at is not None
        assert tenant.db_secondary_enabled is False
        assert "Defaults" in repr(tenant)

    @pytest.mark.asyncio
    async def test_updated_at_advances_on_update(self, session_factory, make_tenant):
        tenant_id = await make_tenant()
        async with session_factory() as session:
            before = (await session.get(Tenant, tenant_id)).updated_at

        await asyncio.sleep(0.01)
        async with session_factory() as session:
            await session.execute(
                update(Tenant).where(Tenant.id == tenant_id).values(db_host="10.0.0.2")
            )
            await session.commit()

        async with session_factory() as session:
            after = (await session.get(Tenant, tenant_id)).updated_at

        assert after > before


class TestPlatformDatabaseManager:
    """Test suite for PlatformDatabaseManager"""

    @pytest.mark.asyncio
    async def test_lifecycle(self, settings):
        manager = PlatformDatabaseManager(settings)
        assert not manager.initialized

        session_factory = manager.initialize()
        assert manager.initialize() is session_factory
        assert await manager.test_connection() is True

        await manager.close()
        assert not manager.initialized

    @pytest.mark.asyncio
    async def test_create_tables_requires_initialize(self, settings):
        with pytest.raises(RuntimeError):
            await PlatformDatabaseManager(settings).create_tables()
