"""
Tenant Database Client Factory
Builds bounded, connection-pooled async clients against a tenant's MySQL server
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional, Protocol

from loguru import logger
from sqlalchemy import event, exc as sa_exc, text
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tenant_broker.config import Settings
from tenant_broker.exceptions import PoolExhaustedError, TenantConnectionError
from tenant_broker.schemas.tenant import CredentialBundle, DatabaseKind


TENANT_DB_DRIVER = "mysql+aiomysql"


class ErrorObserver(Protocol):
    """Receives errors raised by a tenant client's engine"""

    def on_error(self, tenant_id: str, kind: DatabaseKind, error: BaseException) -> None: ...


class LoggingErrorObserver:
    """Default observer: logs the failure with the tenant identity"""

    def on_error(self, tenant_id: str, kind: DatabaseKind, error: BaseException) -> None:
        logger.error(
            f"Tenant database error (tenant={tenant_id}, kind={kind.value}): "
            f"{type(error).__name__}: {error}"
        )


class TenantDatabaseClient:
    """
    Live handle on one tenant database.

    Owned by the connection registry. Callers use session() or connect()
    and must never call close() themselves.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        tenant_id: str,
        kind: DatabaseKind,
        database_name: str,
    ):
        self.engine = engine
        self.tenant_id = tenant_id
        self.kind = kind
        self.database_name = database_name
        self.created_at = datetime.utcnow()
        self.session_factory = async_sessionmaker(
            engine,
            expire_on_commit=False,
            autoflush=False,
        )
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[AsyncConnection]:
        """
        Check out a pooled connection.

        Raises:
            PoolExhaustedError: If no connection frees up within the pool timeout
            TenantConnectionError: If the client is closed or the server is unreachable
        """
        self._ensure_open()
        conn = self.engine.connect()
        try:
            await conn.start()
        except sa_exc.TimeoutError as e:
            raise self._pool_exhausted() from e
        except sa_exc.DBAPIError as e:
            raise self._connection_failed(e) from e

        try:
            yield conn
        finally:
            await conn.close()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        ORM session on the tenant database.
        Commits on success, rolls back on error.

        Example:
            async with client.session() as session:
                await session.execute(text("SELECT 1"))
        """
        self._ensure_open()
        async with self.session_factory() as session:
            try:
                await session.connection()
            except sa_exc.TimeoutError as e:
                raise self._pool_exhausted() from e
            except sa_exc.DBAPIError as e:
                raise self._connection_failed(e) from e

            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self):
        """Release the pool; checked-out connections are closed once returned"""
        if self._closed:
            return
        self._closed = True
        await self.engine.dispose()

    def _ensure_open(self):
        if self._closed:
            raise TenantConnectionError(
                f"Client for tenant {self.tenant_id} ({self.kind.value}) has been closed",
                details={"tenant_id": self.tenant_id, "kind": self.kind.value},
            )

    def _pool_exhausted(self) -> PoolExhaustedError:
        logger.warning(
            f"Connection pool exhausted for tenant {self.tenant_id} ({self.kind.value})"
        )
        return PoolExhaustedError(
            f"All connections to {self.database_name} are busy for tenant {self.tenant_id}",
            details={
                "tenant_id": self.tenant_id,
                "kind": self.kind.value,
                "pool_size": self.engine.pool.size(),
            },
        )

    def _connection_failed(self, error: sa_exc.DBAPIError) -> TenantConnectionError:
        return TenantConnectionError(
            f"Connection to {self.database_name} failed for tenant {self.tenant_id}: {error.orig}",
            details={"tenant_id": self.tenant_id, "kind": self.kind.value},
        )

    def __repr__(self) -> str:
        return (
            f"<TenantDatabaseClient(tenant={self.tenant_id}, kind={self.kind.value}, "
            f"database={self.database_name}, closed={self._closed})>"
        )


class ClientFactory:
    """
    Creates tenant clients from credential bundles.

    Every client gets the same pool bound (pool_size, no overflow), the
    configured query-logging level and an error observer hook.
    """

    def __init__(self, settings: Settings, error_observer: Optional[ErrorObserver] = None):
        self._settings = settings
        self._error_observer = error_observer or LoggingErrorObserver()

    @property
    def pool_size(self) -> int:
        return self._settings.tenant_db_pool_size

    def database_name(self, kind: DatabaseKind) -> str:
        """Database name on the tenant server for a kind"""
        if kind is DatabaseKind.SECONDARY:
            return self._settings.tenant_db_secondary_name
        return self._settings.tenant_db_primary_name

    def build_url(self, bundle: CredentialBundle) -> URL:
        return URL.create(
            TENANT_DB_DRIVER,
            username=bundle.username,
            password=bundle.password.get_secret_value(),
            host=bundle.host,
            port=bundle.port,
            database=self.database_name(bundle.kind),
        )

    def create_engine(self, bundle: CredentialBundle) -> AsyncEngine:
        return create_async_engine(
            self.build_url(bundle),
            pool_size=self._settings.tenant_db_pool_size,
            max_overflow=0,
            pool_timeout=self._settings.tenant_db_pool_timeout,
            pool_recycle=self._settings.tenant_db_pool_recycle,
            pool_pre_ping=True,
            echo=self._settings.log_tenant_queries,
            connect_args={"connect_timeout": self._settings.tenant_db_connect_timeout},
        )

    async def build(self, bundle: CredentialBundle) -> TenantDatabaseClient:
        """
        Build a client and prove it can reach the server.

        Args:
            bundle: Decrypted credentials (not retained)

        Returns:
            Ready TenantDatabaseClient

        Raises:
            TenantConnectionError: Server unreachable, login rejected or timeout
        """
        database_name = self.database_name(bundle.kind)
        engine = self.create_engine(bundle)
        self._register_error_observer(engine, bundle.tenant_id, bundle.kind)
        details = {
            "tenant_id": bundle.tenant_id,
            "kind": bundle.kind.value,
            "host": bundle.host,
            "port": bundle.port,
            "database": database_name,
        }

        try:
            await asyncio.wait_for(
                self._probe(engine),
                timeout=self._settings.tenant_db_connect_timeout,
            )
        except asyncio.TimeoutError as e:
            await engine.dispose()
            logger.error(
                f"Timed out connecting to {database_name} for tenant {bundle.tenant_id} "
                f"at {bundle.host}:{bundle.port}"
            )
            raise TenantConnectionError(
                f"Timed out after {self._settings.tenant_db_connect_timeout}s "
                f"connecting to {database_name}",
                details=details,
            ) from e
        except (sa_exc.DBAPIError, OSError) as e:
            await engine.dispose()
            reason = e.orig if isinstance(e, sa_exc.DBAPIError) else e
            logger.error(
                f"Failed to connect to {database_name} for tenant {bundle.tenant_id} "
                f"at {bundle.host}:{bundle.port}: {reason}"
            )
            raise TenantConnectionError(
                f"Failed to connect to {database_name}: {reason}",
                details=details,
            ) from e

        logger.info(
            f"Created connection pool for tenant {bundle.tenant_id} "
            f"({bundle.kind.value} -> {database_name}, pool_size={self.pool_size})"
        )
        return TenantDatabaseClient(engine, bundle.tenant_id, bundle.kind, database_name)

    async def _probe(self, engine: AsyncEngine):
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    def _register_error_observer(self, engine: AsyncEngine, tenant_id: str, kind: DatabaseKind):
        observer = self._error_observer

        def _on_error(context):
            try:
                observer.on_error(tenant_id, kind, context.original_exception)
            except Exception as e:
                logger.warning(f"Error observer failed for tenant {tenant_id}: {e}")

        event.listen(engine.sync_engine, "handle_error", _on_error)
