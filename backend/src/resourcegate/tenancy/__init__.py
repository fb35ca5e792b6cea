"""Multi-tenant scoping."""

from resourcegate.tenancy.scope import (
    MAX_OWNERSHIP_DEPTH,
    OwnershipResolution,
    ScopeKind,
    TenantScopeResolver,
)

__all__ = [
    "MAX_OWNERSHIP_DEPTH",
    "OwnershipResolution",
    "ScopeKind",
    "TenantScopeResolver",
]
