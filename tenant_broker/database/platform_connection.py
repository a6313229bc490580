"""
Platform Database Connection Management
Handles the async connection to the control-plane database (tenants, credentials, flags)
"""

from typing import Optional

from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from tenant_broker.config import Settings
from tenant_broker.models.platform.base import PlatformBase


class PlatformDatabaseManager:
    """
    Platform Database Connection Manager

    Owns the engine of the platform's own database. It is kept strictly
    apart from tenant clients: nothing here ever connects to a tenant server.
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> async_sessionmaker:
        """
        Create the engine and session factory.

        Returns:
            async_sessionmaker bound to the platform engine
        """
        if self._initialized:
            logger.warning("Platform database already initialized")
            return self.session_factory

        url = make_url(self._settings.platform_database_url)
        logger.info(
            f"Initializing platform database: {url.render_as_string(hide_password=True)}"
        )

        if url.get_backend_name() == "sqlite":
            # In-memory/local databases share a single connection
            engine_kwargs = {
                "poolclass": StaticPool,
                "connect_args": {"check_same_thread": False},
            }
        else:
            engine_kwargs = {
                "pool_size": self._settings.platform_db_pool_size,
                "max_overflow": self._settings.platform_db_max_overflow,
                "pool_timeout": self._settings.platform_db_pool_timeout,
                "pool_pre_ping": True,
            }

        self.engine = create_async_engine(
            url,
            echo=self._settings.debug,
            **engine_kwargs
        )
        self.session_factory = async_sessionmaker(
            self.engine,
            expire_on_commit=False,
            autoflush=False,
        )
        self._initialized = True
        logger.info("[OK] Platform database engine created")
        return self.session_factory

    async def create_tables(self):
        """
        Create the platform tables if they don't exist.
        Note: Prefer migrations for production.
        """
        if not self._initialized:
            raise RuntimeError("Platform database not initialized")

        async with self.engine.begin() as conn:
            await conn.run_sync(PlatformBase.metadata.create_all)
        logger.info("[OK] Platform database tables created/verified")

    async def test_connection(self) -> bool:
        """
        Test platform database connection

        Returns:
            True if connection successful
        """
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            logger.info("[OK] Platform database connection test passed")
            return True
        except Exception as e:
            logger.error(f"[FAIL] Platform database connection test failed: {e}")
            return False

    async def close(self):
        """Close all platform database connections"""
        if self.engine is not None:
            await self.engine.dispose()
            self._initialized = False
            logger.info("[OK] Platform database connections closed")
