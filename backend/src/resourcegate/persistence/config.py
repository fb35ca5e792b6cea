"""Data store factory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from resourcegate.config import GatewayConfig

if TYPE_CHECKING:
    from resourcegate.metadata.registry import ResourceRegistry
    from resourcegate.persistence.adapter import DataStore


def create_store(config: GatewayConfig, registry: ResourceRegistry) -> DataStore:
    """Create a data store based on the database URL scheme.

    Returns:
        A DataStore instance (not yet connected)

    Raises:
        ValueError: For unsupported URL schemes
    """
    if config.is_sqlite:
        from resourcegate.persistence.sqlite import SQLiteAdapter

        return SQLiteAdapter(config.sqlite_path, registry)

    raise ValueError(f"Unsupported database URL scheme: {config.database_url}")
