"""
Tenant Model
Represents a business customer and the attributes of its external database
"""

from sqlalchemy import Boolean, Column, Integer, String, Text

from tenant_broker.models.platform.base import PlatformBase


class Tenant(PlatformBase):
    """
    Tenant Model - a customer organization of the platform.

    The tenant's operational data lives on a tenant-owned MySQL server;
    only the connection attributes to reach it are stored here. The
    password is stored Fernet-encrypted and is only ever decrypted by
    the credential resolver.
    """

    __tablename__ = "tenants"

    # ==================== Identity ====================
    name = Column(String(255), nullable=False)

    # ==================== External Database ====================
    # Shared by the primary and the secondary database of the tenant
    db_host = Column(String(255), nullable=True)
    db_port = Column(Integer, nullable=True)
    db_username = Column(String(255), nullable=True)
    db_password_encrypted = Column(Text, nullable=True)

    # Gates the secondary (fiscal documents) database
    db_secondary_enabled = Column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, name={self.name})>"
