"""Database utilities - engine and tenant-scoped sessions."""

from src.agrogate.core.db.engine import create_engine_from_settings, create_session_factory
from src.agrogate.core.db.tenant_scope import (
    BYPASS_SETTING,
    TENANT_SETTING,
    TenantContextGate,
)

__all__ = [
    # Engine
    "create_engine_from_settings",
    "create_session_factory",
    # Tenant Context Gate
    "BYPASS_SETTING",
    "TENANT_SETTING",
    "TenantContextGate",
]
