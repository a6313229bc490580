"""
Configuration Management for the Tenant Database Broker
Uses Pydantic Settings for type-safe configuration
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application Settings loaded from environment variables
    """

    # ==================== Application ====================
    app_name: str = Field(default="Tenant DB Broker")
    app_version: str = Field(default="1.0.0")
    environment: str = Field(default="development")
    debug: bool = Field(default=False)

    # ==================== Platform Database (Control Plane) ====================
    # Stores tenants, users and per-tenant connection attributes.
    # Never used for tenant business data.
    platform_database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/platform"
    )
    platform_db_pool_size: int = Field(default=5)
    platform_db_max_overflow: int = Field(default=10)
    platform_db_pool_timeout: int = Field(default=30)

    # ==================== Credential Encryption ====================
    # Fernet key (or any secret, stretched with SHA-256) for tenant DB passwords
    encryption_key: str = Field(default="change-me-tenant-credential-secret")

    # ==================== Tenant Databases ====================
    tenant_db_default_port: int = Field(default=3306)
    tenant_db_primary_name: str = Field(default="bussolla_db")
    tenant_db_secondary_name: str = Field(default="opytex_db_dfe")

    # Pool bound per tenant per database kind
    tenant_db_pool_size: int = Field(default=5, ge=1)
    tenant_db_pool_timeout: float = Field(default=10.0, gt=0)
    tenant_db_pool_recycle: int = Field(default=1800)
    tenant_db_connect_timeout: float = Field(default=10.0, gt=0)

    # Query-level logging; falls back to the environment when unset
    tenant_db_log_queries: Optional[bool] = Field(default=None)

    # ==================== Logging ====================
    log_level: str = Field(default="INFO")
    log_to_file: bool = Field(default=False)
    log_dir: str = Field(default="./logs")
    log_file: str = Field(default="tenant_broker.log")
    log_rotation: str = Field(default="10 MB")
    log_retention: str = Field(default="30 days")
    enable_audit_log: bool = Field(default=True)
    audit_log_file: str = Field(default="audit.log")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore"
    )

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def log_tenant_queries(self) -> bool:
        """Whether tenant clients echo every statement (query-level logging)"""
        if self.tenant_db_log_queries is not None:
            return self.tenant_db_log_queries
        return self.is_development


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance

    Returns:
        Settings instance loaded from environment variables
    """
    return Settings()


# Global settings instance
settings = get_settings()
