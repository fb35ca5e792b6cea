"""Wiring of the long-lived services behind the HTTP layer."""

import asyncio
import logging
from dataclasses import dataclass, field

from resourcegate.audit import AuditLogStore, AuditRecorder
from resourcegate.auth import PermissionEvaluator, RoleAssignmentStore
from resourcegate.config import GatewayConfig
from resourcegate.crud import ResourceService
from resourcegate.metadata import MetadataLoader, ResourceRegistry
from resourcegate.nested import NestedCoordinator
from resourcegate.persistence import DataStore, create_store
from resourcegate.redaction import HiddenFieldsCache
from resourcegate.tenancy import TenantScopeResolver
from resourcegate.validation import RequestValidator

logger = logging.getLogger(__name__)


@dataclass
class Gateway:
    """Everything a request handler needs, built once at startup.

    ``lock`` serializes store access across requests: the store holds a
    single connection and a nested batch yields to the event loop while
    its transaction is open.
    """

    config: GatewayConfig
    registry: ResourceRegistry
    store: DataStore
    scopes: TenantScopeResolver
    redaction: HiddenFieldsCache
    service: ResourceService
    coordinator: NestedCoordinator
    assignments: RoleAssignmentStore
    audit_log: AuditLogStore
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def close(self) -> None:
        self.store.close()
        self.assignments.dispose()
        self.audit_log.dispose()


def build_gateway(config: GatewayConfig) -> Gateway:
    """Load metadata, connect the store and create every resource table."""
    loader = MetadataLoader(config.metadata_path)
    loader.load_all()
    registry = ResourceRegistry.from_loader(loader, evaluator=PermissionEvaluator())

    store = create_store(config, registry)
    store.connect()
    for descriptor in registry.descriptors():
        store.initialize(descriptor)

    scopes = TenantScopeResolver(registry, config.tenancy)
    for descriptor in registry.descriptors():
        logger.debug("%s: %s", descriptor.slug, scopes.resolution(descriptor.entity).describe())

    redaction = HiddenFieldsCache()
    validator = RequestValidator()
    audit_log = AuditLogStore(config.database_url)
    audit = AuditRecorder(audit_log)

    logger.info("Serving %d resources from %s", len(registry.slugs()), config.metadata_path)
    return Gateway(
        config=config,
        registry=registry,
        store=store,
        scopes=scopes,
        redaction=redaction,
        service=ResourceService(registry, store, scopes, redaction, validator, audit),
        coordinator=NestedCoordinator(registry, store, scopes, validator, config.nested, audit),
        assignments=RoleAssignmentStore(config.database_url),
        audit_log=audit_log,
    )
