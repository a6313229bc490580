"""
Tenant DB Broker
Resolves, caches and retires per-tenant database clients in a multi-tenant backend
"""

__version__ = "1.0.0"
