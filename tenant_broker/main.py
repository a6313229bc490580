"""
FastAPI Application Entry Point
Lifecycle of the platform database and the tenant database broker
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from tenant_broker.config import Settings, get_settings
from tenant_broker.database.platform_connection import PlatformDatabaseManager
from tenant_broker.exceptions import BrokerError
from tenant_broker.logging_config import configure_logging
from tenant_broker.services.broker import create_broker
from tenant_broker.services.tenant_credentials import create_credentials_service


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use; defaults to the cached environment settings

    Returns:
        FastAPI app whose lifespan owns the broker
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application Lifespan Manager
        Handles startup and shutdown events
        """
        configure_logging(settings)

        # Startup
        logger.info("=" * 80)
        logger.info(f"Starting {settings.app_name} v{settings.app_version}")
        logger.info(f"Environment: {settings.environment}")
        logger.info("=" * 80)

        platform_db = PlatformDatabaseManager(settings)
        try:
            logger.info("Initializing platform database...")
            session_factory = platform_db.initialize()
            if settings.is_development:
                await platform_db.create_tables()

            logger.info("Initializing tenant database broker...")
            broker = create_broker(settings, session_factory)
            credentials_service = create_credentials_service(settings, session_factory, broker)
        except Exception as e:
            logger.error(f"Failed to initialize services: {str(e)}")
            await platform_db.close()
            raise

        app.state.platform_db = platform_db
        app.state.broker = broker
        app.state.credentials_service = credentials_service
        logger.info("All services initialized successfully")

        yield

        # Shutdown: tenant clients first, then the control plane
        logger.info("=" * 80)
        logger.info("Shutting down application...")
        try:
            await broker.shutdown()
        except Exception as e:
            logger.error(f"Error closing tenant clients: {str(e)}")
        try:
            await platform_db.close()
        except Exception as e:
            logger.error(f"Error closing platform database: {str(e)}")
        logger.info("=" * 80)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Per-tenant database connection broker",
        lifespan=lifespan
    )

    @app.exception_handler(BrokerError)
    async def broker_exception_handler(request: Request, exc: BrokerError):
        """Map broker errors to their HTTP status so callers can tell 'not configured' from 'failing'"""
        if exc.status_code >= 500:
            logger.error(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")
        else:
            logger.info(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.get("/health")
    async def health_check(request: Request):
        """
        Health check endpoint
        Returns platform database status and tenant registry stats
        """
        platform_ok = await request.app.state.platform_db.test_connection()
        return {
            "status": "healthy" if platform_ok else "degraded",
            "app": settings.app_name,
            "version": settings.app_version,
            "platform_database": platform_ok,
            "tenant_connections": request.app.state.broker.stats().model_dump(),
        }

    return app


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "tenant_broker.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=_settings.debug
    )
