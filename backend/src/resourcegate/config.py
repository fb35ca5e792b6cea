"""Gateway configuration loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in TRUTHY


@dataclass
class TenancyConfig:
    """How tenants are identified.

    Attributes:
        enabled: When False every resource is unscoped
        root_entity: Entity type acting as the tenant root
        tenant_field: Column carried by directly tenant-scoped entities
        identifier: Column of the root entity matched against the
            ``{tenant}`` route segment
    """

    enabled: bool = True
    root_entity: str = "Organization"
    tenant_field: str = "organizationId"
    identifier: str = "id"


@dataclass
class NestedConfig:
    path: str = "nested"
    max_operations: int = 50
    allowed_models: frozenset[str] | None = None  # None allows every slug


@dataclass
class GatewayConfig:
    """Top-level configuration for the gateway.

    Resolution mirrors the database config: explicit env vars first, then
    defaults relative to ``base_path``.
    """

    database_url: str
    metadata_path: Path
    secret_key: str = "dev-secret-key-change-in-production"
    auth_disabled: bool = False
    tenancy: TenancyConfig = field(default_factory=TenancyConfig)
    nested: NestedConfig = field(default_factory=NestedConfig)

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> GatewayConfig:
        base = Path(base_path) if base_path else Path.cwd()

        url = os.environ.get("DATABASE_URL")
        if not url:
            db_path = os.environ.get("RESOURCEGATE_DB_PATH")
            if db_path:
                url = f"sqlite:///{db_path}"
            else:
                url = f"sqlite:///{base / 'data' / 'resourcegate.db'}"

        metadata_path = Path(os.environ.get("RESOURCEGATE_METADATA_PATH", str(base / "metadata")))

        allowed_raw = os.environ.get("RESOURCEGATE_NESTED_ALLOWED")
        allowed = None
        if allowed_raw:
            allowed = frozenset(s.strip() for s in allowed_raw.split(",") if s.strip())

        return cls(
            database_url=url,
            metadata_path=metadata_path,
            secret_key=os.environ.get("RESOURCEGATE_SECRET_KEY", cls.secret_key),
            auth_disabled=_env_flag("RESOURCEGATE_DISABLE_AUTH", False),
            tenancy=TenancyConfig(
                enabled=_env_flag("RESOURCEGATE_MULTI_TENANT", True),
                root_entity=os.environ.get("RESOURCEGATE_TENANT_ENTITY", "Organization"),
                tenant_field=os.environ.get("RESOURCEGATE_TENANT_FIELD", "organizationId"),
                identifier=os.environ.get("RESOURCEGATE_TENANT_IDENTIFIER", "id"),
            ),
            nested=NestedConfig(
                path=os.environ.get("RESOURCEGATE_NESTED_PATH", "nested").strip("/"),
                max_operations=int(os.environ.get("RESOURCEGATE_NESTED_MAX_OPERATIONS", "50")),
                allowed_models=allowed,
            ),
        )

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def sqlite_path(self) -> str:
        path = self.database_url.replace("sqlite:///", "", 1)
        return path or ":memory:"
