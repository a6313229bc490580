"""
Tenant Database Schemas
Pydantic models for connection records, credential bundles and connection status
"""

import ipaddress
import re
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


# =============================================================================
# Enums
# =============================================================================

class DatabaseKind(str, Enum):
    """Logical tenant databases reachable with the tenant's credentials"""
    PRIMARY = "primary"      # operational store
    SECONDARY = "secondary"  # fiscal documents store, feature-gated

    @classmethod
    def parse(cls, value: "DatabaseKind | str") -> "DatabaseKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            valid = ", ".join(k.value for k in cls)
            raise ValueError(
                f"Unknown database kind '{value}' (expected one of: {valid})"
            ) from None


# =============================================================================
# Control-plane record and resolved credentials
# =============================================================================

class TenantConnectionRecord(BaseModel):
    """
    Connection attributes of a tenant as stored in the control plane.

    Fields are optional here and only here; a resolved CredentialBundle is
    always fully populated.
    """
    model_config = ConfigDict(frozen=True)

    tenant_id: str
    db_host: Optional[str] = None
    db_port: Optional[int] = None
    db_username: Optional[str] = None
    db_password_encrypted: Optional[str] = Field(default=None, repr=False)
    secondary_feature_enabled: bool = False

    @property
    def is_configured(self) -> bool:
        """Partially configured counts as not configured"""
        return bool(self.db_host and self.db_username and self.db_password_encrypted)

    def is_enabled(self, kind: DatabaseKind) -> bool:
        if kind is DatabaseKind.SECONDARY:
            return self.secondary_feature_enabled
        return True


class CredentialBundle(BaseModel):
    """Decrypted credentials for one tenant database. Ephemeral, never cached."""
    model_config = ConfigDict(frozen=True)

    tenant_id: str
    kind: DatabaseKind
    host: str
    port: int
    username: str
    password: SecretStr


# =============================================================================
# Connection parameters (administration)
# =============================================================================

_DOMAIN_RE = re.compile(
    r"^([a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+[a-zA-Z]{2,}$"
)


class ConnectionParams(BaseModel):
    """Plaintext connection parameters entered by an administrator"""
    host: str
    port: int = 3306
    username: str
    password: SecretStr

    @field_validator('host', mode='before')
    @classmethod
    def validate_host(cls, v) -> str:
        """Allow localhost, IP addresses and domain names"""
        if v is None or not str(v).strip():
            raise ValueError('Host is required')
        v = str(v).strip()
        if v == 'localhost' or _DOMAIN_RE.match(v):
            return v
        try:
            ipaddress.ip_address(v)
        except ValueError:
            raise ValueError('Host must be a valid IP address or domain name')
        return v

    @field_validator('port', mode='before')
    @classmethod
    def validate_port(cls, v) -> int:
        if v is None or str(v).strip() == '':
            raise ValueError('Port is required')
        if isinstance(v, bool):
            raise ValueError('Port must be a number between 1 and 65535')
        try:
            port = int(str(v).strip())
        except ValueError:
            raise ValueError('Port must be a number between 1 and 65535')
        if not 1 <= port <= 65535:
            raise ValueError('Port must be a number between 1 and 65535')
        return port

    @field_validator('username', mode='before')
    @classmethod
    def validate_username(cls, v) -> str:
        if v is None or not str(v).strip():
            raise ValueError('Username is required')
        return str(v).strip()

    @field_validator('password', mode='before')
    @classmethod
    def validate_password(cls, v):
        raw = v.get_secret_value() if isinstance(v, SecretStr) else v
        if not raw:
            raise ValueError('Password is required')
        return v


class ValidationResult(BaseModel):
    """Outcome of validating connection parameters"""
    valid: bool
    errors: List[str] = Field(default_factory=list)


class CredentialSummary(BaseModel):
    """Stored credentials with the password masked"""
    tenant_id: str
    host: Optional[str] = None
    port: Optional[int] = None
    username: Optional[str] = None
    has_password: bool = False
    secondary_enabled: bool = False


class ConnectionTestResult(BaseModel):
    """Outcome of a throwaway connection test"""
    success: bool
    message: str
    error: Optional[str] = None


# =============================================================================
# Connection status
# =============================================================================

class ConnectionInfo(BaseModel):
    """A cached tenant client as seen by status pages"""
    tenant_id: str
    kind: DatabaseKind
    database_name: str
    created_at: datetime
    last_used_at: datetime


class ConnectionStats(BaseModel):
    """Aggregate view of the connection registry"""
    total: int
    pool_size: int
    by_tenant: Dict[str, int] = Field(default_factory=dict)
    by_kind: Dict[str, int] = Field(default_factory=dict)
