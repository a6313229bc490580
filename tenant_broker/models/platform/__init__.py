"""
Platform Models Package
SQLAlchemy ORM models for the control-plane database
"""

from tenant_broker.models.platform.base import PlatformBase
from tenant_broker.models.platform.tenant import Tenant

__all__ = [
    "PlatformBase",
    "Tenant",
]
