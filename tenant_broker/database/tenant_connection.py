"""
Tenant Database Connection Registry
Process-wide cache of live tenant clients keyed by (tenant_id, kind)
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from loguru import logger

from tenant_broker.database.client_factory import ClientFactory, TenantDatabaseClient
from tenant_broker.exceptions import TenantConnectionError
from tenant_broker.schemas.tenant import ConnectionInfo, ConnectionStats, DatabaseKind

if TYPE_CHECKING:
    from tenant_broker.services.credential_resolver import CredentialResolver


CacheKey = Tuple[str, DatabaseKind]


def _retrieve_exception(task: asyncio.Task):
    # Every waiter may have been cancelled; mark a failure as seen
    if not task.cancelled():
        task.exception()


@dataclass
class CachedClientEntry:
    """A Ready client in the registry"""
    tenant_id: str
    kind: DatabaseKind
    client: TenantDatabaseClient
    created_at: datetime = field(default_factory=datetime.utcnow)
    last_used_at: datetime = field(default_factory=datetime.utcnow)

    def to_info(self) -> ConnectionInfo:
        return ConnectionInfo(
            tenant_id=self.tenant_id,
            kind=self.kind,
            database_name=self.client.database_name,
            created_at=self.created_at,
            last_used_at=self.last_used_at,
        )


class ConnectionRegistry:
    """
    Connection registry for tenant databases

    Per key the state is Absent (no entry, no task), Creating (a shared
    creation task) or Ready (a cached entry). At most one creation runs
    per key; concurrent first callers await the same task. Failed
    creations leave nothing behind, so the next call is a clean retry.
    Entries never expire: they are removed only by close().
    """

    def __init__(self, resolver: "CredentialResolver", factory: ClientFactory):
        self._resolver = resolver
        self._factory = factory
        self._entries: Dict[CacheKey, CachedClientEntry] = {}
        self._pending: Dict[CacheKey, asyncio.Task] = {}
        self._closed = False

        logger.info("ConnectionRegistry initialized")

    @property
    def factory(self) -> ClientFactory:
        return self._factory

    async def get(self, tenant_id: str, kind: DatabaseKind) -> TenantDatabaseClient:
        """
        Get the cached client or create it.

        Args:
            tenant_id: Tenant identifier
            kind: Database kind

        Returns:
            TenantDatabaseClient shared by every caller of the same key
        """
        if self._closed:
            raise TenantConnectionError(
                "Tenant database broker is shut down",
                details={"tenant_id": tenant_id, "kind": kind.value},
            )

        key = (tenant_id, kind)

        entry = self._entries.get(key)
        if entry is not None:
            entry.last_used_at = datetime.utcnow()
            return entry.client

        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._create(key))
            task.add_done_callback(_retrieve_exception)
            self._pending[key] = task
        else:
            logger.debug(f"Awaiting in-flight client creation for tenant {tenant_id} ({kind.value})")

        # A cancelled caller must not cancel the creation other callers share
        return await asyncio.shield(task)

    async def _create(self, key: CacheKey) -> TenantDatabaseClient:
        tenant_id, kind = key
        try:
            bundle = await self._resolver.resolve(tenant_id, kind)
            client = await self._factory.build(bundle)
            self._entries[key] = CachedClientEntry(tenant_id=tenant_id, kind=kind, client=client)
            logger.info(
                f"Cached client for tenant {tenant_id} ({kind.value}), "
                f"total: {len(self._entries)}"
            )
            return client
        finally:
            # Cleared before the task completes so no caller sees a finished task
            self._pending.pop(key, None)

    async def close(self, tenant_id: str, kind: DatabaseKind) -> bool:
        """
        Close one client and remove it from the cache.

        An in-flight creation for the key is awaited first and the resulting
        client, if any, is closed right away.

        Returns:
            True if a client was closed
        """
        key = (tenant_id, kind)

        task = self._pending.get(key)
        if task is not None:
            try:
                await asyncio.shield(task)
            except Exception as e:
                logger.debug(
                    f"In-flight creation for tenant {tenant_id} ({kind.value}) failed "
                    f"before close: {type(e).__name__}"
                )

        entry = self._entries.pop(key, None)
        if entry is None:
            return False

        try:
            await entry.client.close()
        except Exception as e:
            logger.warning(
                f"Error disposing client for tenant {tenant_id} ({kind.value}): {e}"
            )
        logger.info(f"Closed client for tenant {tenant_id} ({kind.value})")
        return True

    async def close_all(self, tenant_id: str) -> int:
        """
        Close every client of a tenant (deleted tenant, rotated credentials).

        Returns:
            Number of clients closed
        """
        results = await asyncio.gather(
            *(self.close(tenant_id, kind) for kind in DatabaseKind)
        )
        closed = sum(1 for r in results if r)
        if closed:
            logger.info(f"Closed {closed} client(s) for tenant {tenant_id}")
        return closed

    async def close_everything(self) -> int:
        """Close every cached client (process shutdown); later get() calls fail"""
        self._closed = True
        keys = set(self._entries) | set(self._pending)
        results = await asyncio.gather(
            *(self.close(tenant_id, kind) for tenant_id, kind in keys)
        )
        closed = sum(1 for r in results if r)
        logger.info(f"All tenant clients closed ({closed})")
        return closed

    def is_ready(self, tenant_id: str, kind: DatabaseKind) -> bool:
        return (tenant_id, kind) in self._entries

    def is_creating(self, tenant_id: str, kind: DatabaseKind) -> bool:
        return (tenant_id, kind) in self._pending

    def get_connection(self, tenant_id: str, kind: DatabaseKind) -> Optional[ConnectionInfo]:
        entry = self._entries.get((tenant_id, kind))
        return entry.to_info() if entry else None

    def list_connections(self) -> List[ConnectionInfo]:
        return [entry.to_info() for entry in self._entries.values()]

    def stats(self) -> ConnectionStats:
        by_tenant: Dict[str, int] = {}
        by_kind: Dict[str, int] = {kind.value: 0 for kind in DatabaseKind}

        for tenant_id, kind in self._entries:
            by_tenant[tenant_id] = by_tenant.get(tenant_id, 0) + 1
            by_kind[kind.value] += 1

        return ConnectionStats(
            total=len(self._entries),
            pool_size=self._factory.pool_size,
            by_tenant=by_tenant,
            by_kind=by_kind,
        )
