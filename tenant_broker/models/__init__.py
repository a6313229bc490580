"""
Models Package
"""

from tenant_broker.models.platform import PlatformBase, Tenant

__all__ = ["PlatformBase", "Tenant"]
