"""
API Dependencies
FastAPI dependencies handing out the process-wide broker and credentials service
"""

from fastapi import HTTPException, Request, status

from tenant_broker.services.broker import TenantDatabaseBroker
from tenant_broker.services.tenant_credentials import TenantCredentialsService


def _from_state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Tenant database broker is not initialized"
        )
    return value


def get_broker(request: Request) -> TenantDatabaseBroker:
    """
    Dependency for route handlers that need tenant database clients

    Usage:
        @router.get("/items")
        async def list_items(broker: TenantDatabaseBroker = Depends(get_broker)):
            client = await broker.resolve_client(tenant_id, "primary")
    """
    return _from_state(request, "broker")


def get_credentials_service(request: Request) -> TenantCredentialsService:
    return _from_state(request, "credentials_service")
