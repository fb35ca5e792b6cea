"""Tenant scope resolution.

Each entity's path to the tenant root is resolved once, when the resolver is
built, from the registry's relationship edges. ``scope_for`` then only binds
the current tenant id into the precomputed shape.

Decision order, first match wins:

1. The entity is the tenant root: equality on its primary key.
2. The entity carries the tenant field (or declares ``ownership: direct``):
   equality on that field.
3. The entity declares an ownership path (``ownership: post.blog``): walk the
   edges until a hop reaches the root or an entity carrying the tenant
   field. A hop landing on an entity with its own declared path continues
   along that path. A path ending on an entity with a to-one edge to the root
   has that edge appended.
4. No path declared but a belongsTo edge to the root exists: use it.
5. Otherwise the entity is global.

Cycles and paths longer than ``MAX_OWNERSHIP_DEPTH`` hops resolve to global
with a warning.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from resourcegate.config import TenancyConfig
from resourcegate.core.predicates import (
    DENY_ALL,
    UNSCOPED,
    FieldEquals,
    RelationExists,
    Scope,
)
from resourcegate.metadata.loader import (
    OWNERSHIP_DIRECT,
    OWNERSHIP_GLOBAL,
    Cardinality,
    KeySide,
    RelationshipEdge,
    ResourceDescriptor,
)
from resourcegate.metadata.registry import ResourceRegistry

logger = logging.getLogger(__name__)

MAX_OWNERSHIP_DEPTH = 8


class ScopeKind(Enum):
    ROOT = "root"
    DIRECT = "direct"
    PATH = "path"
    GLOBAL = "global"


@dataclass(frozen=True)
class OwnershipResolution:
    kind: ScopeKind
    field: str | None = None
    hops: tuple[RelationshipEdge, ...] = ()

    @property
    def scoped(self) -> bool:
        return self.kind is not ScopeKind.GLOBAL

    def describe(self) -> str:
        if self.kind is ScopeKind.PATH:
            path = ".".join(h.name for h in self.hops)
            return f"path {path} -> {self.field}"
        if self.kind is ScopeKind.GLOBAL:
            return "global"
        return f"{self.kind.value} ({self.field})"


GLOBAL = OwnershipResolution(ScopeKind.GLOBAL)


class TenantScopeResolver:
    """Builds tenant predicates for registered entities."""

    def __init__(self, registry: ResourceRegistry, config: TenancyConfig):
        self.registry = registry
        self.config = config
        root = registry.entity(config.root_entity)
        self.root_descriptor: ResourceDescriptor | None = root
        if config.enabled and root is None:
            logger.warning(
                "Tenant root entity '%s' is not registered; every resource resolves as global",
                config.root_entity,
            )
        self._resolutions: dict[str, OwnershipResolution] = {
            d.entity: self._resolve(d) for d in registry.descriptors()
        }

    @property
    def enabled(self) -> bool:
        return self.config.enabled and self.root_descriptor is not None

    def resolution(self, entity: str) -> OwnershipResolution:
        return self._resolutions.get(entity, GLOBAL)

    def is_tenant_root(self, entity: str) -> bool:
        return self.root_descriptor is not None and entity == self.root_descriptor.entity

    def scope_for(self, entity: str, tenant_id: Any) -> Scope:
        """Bind ``tenant_id`` into the entity's precomputed resolution.

        Returns UNSCOPED for global entities (or when multi-tenancy is off)
        and DENY_ALL for scoped entities queried without a tenant.
        """
        if not self.enabled:
            return UNSCOPED
        resolution = self.resolution(entity)
        if not resolution.scoped:
            return UNSCOPED
        if tenant_id is None:
            return DENY_ALL
        if resolution.kind is ScopeKind.PATH:
            return RelationExists(resolution.hops, FieldEquals(resolution.field, tenant_id))
        return FieldEquals(resolution.field, tenant_id)

    def stamp_tenant(self, data: dict[str, Any], entity: str, tenant_id: Any) -> dict[str, Any]:
        """Inject the tenant field into a create payload for direct-scoped entities."""
        if not self.enabled or tenant_id is None:
            return data
        resolution = self.resolution(entity)
        if resolution.kind is not ScopeKind.DIRECT:
            return data
        if data.get(resolution.field) is not None:
            return data
        return {**data, resolution.field: tenant_id}

    def parent_edge(self, entity: str) -> RelationshipEdge | None:
        """First ownership hop of a path-scoped entity, when the entity holds its key."""
        if not self.enabled:
            return None
        resolution = self.resolution(entity)
        if resolution.kind is not ScopeKind.PATH:
            return None
        edge = resolution.hops[0]
        if edge.cardinality is Cardinality.TO_ONE and edge.key_side is KeySide.SOURCE:
            return edge
        return None

    def foreign_parent(self, store: Any, entity: str, data: dict[str, Any], tenant_id: Any) -> str | None:
        """Name of the parent key in ``data`` pointing outside the tenant, or None.

        Only the first hop is checked; the rest of the path follows from the
        parent row already being in scope.
        """
        edge = self.parent_edge(entity)
        if edge is None or tenant_id is None:
            return None
        value = data.get(edge.foreign_key)
        if value is None:
            return None
        target = self.registry.entity(edge.target)
        if store.get(target, value, scope=self.scope_for(target.entity, tenant_id)) is None:
            return edge.foreign_key
        return None

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _carries_tenant_field(self, descriptor: ResourceDescriptor) -> bool:
        return descriptor.has_field(self.config.tenant_field)

    def _resolve(self, descriptor: ResourceDescriptor) -> OwnershipResolution:
        root = self.root_descriptor
        if root is None:
            return GLOBAL
        if descriptor.entity == root.entity:
            return OwnershipResolution(ScopeKind.ROOT, field=root.primary_key)

        ownership = descriptor.ownership
        if ownership == OWNERSHIP_GLOBAL:
            return GLOBAL

        if ownership == OWNERSHIP_DIRECT or (ownership is None and self._carries_tenant_field(descriptor)):
            if not self._carries_tenant_field(descriptor):
                logger.warning(
                    "%s declares direct ownership but has no '%s' field; treating as global",
                    descriptor.entity,
                    self.config.tenant_field,
                )
                return GLOBAL
            return OwnershipResolution(ScopeKind.DIRECT, field=self.config.tenant_field)

        if ownership:
            return self._walk(descriptor, ownership.split("."))

        root_edge = self._root_edge(descriptor)
        if root_edge is not None:
            return OwnershipResolution(ScopeKind.PATH, field=root.primary_key, hops=(root_edge,))

        return GLOBAL

    def _root_edge(self, descriptor: ResourceDescriptor) -> RelationshipEdge | None:
        """A belongsTo edge from ``descriptor`` straight to the tenant root."""
        for edge in self.registry.edges(descriptor.entity):
            if (
                edge.target == self.config.root_entity
                and edge.cardinality is Cardinality.TO_ONE
                and edge.key_side is KeySide.SOURCE
            ):
                return edge
        return None

    def _walk(self, start: ResourceDescriptor, segments: list[str]) -> OwnershipResolution:
        root = self.root_descriptor
        current = start
        pending = list(segments)
        hops: list[RelationshipEdge] = []
        visited: set[tuple[str, str]] = set()

        while pending:
            name = pending.pop(0)
            if (current.entity, name) in visited:
                logger.warning(
                    "Ownership path of %s loops at %s.%s; treating as global",
                    start.entity,
                    current.entity,
                    name,
                )
                return GLOBAL
            visited.add((current.entity, name))

            edge = self.registry.edge(current.entity, name)
            if edge is None:
                logger.warning(
                    "Ownership path of %s names unknown relation %s.%s; treating as global",
                    start.entity,
                    current.entity,
                    name,
                )
                return GLOBAL
            hops.append(edge)
            if len(hops) > MAX_OWNERSHIP_DEPTH:
                logger.warning(
                    "Ownership path of %s exceeds %d hops; treating as global",
                    start.entity,
                    MAX_OWNERSHIP_DEPTH,
                )
                return GLOBAL

            target = self.registry.entity(edge.target)
            if target is None:
                logger.warning("Ownership path of %s reaches unregistered %s", start.entity, edge.target)
                return GLOBAL

            if target.entity == root.entity:
                return OwnershipResolution(ScopeKind.PATH, field=root.primary_key, hops=tuple(hops))
            if self._carries_tenant_field(target) and target.ownership != OWNERSHIP_GLOBAL:
                return OwnershipResolution(ScopeKind.PATH, field=self.config.tenant_field, hops=tuple(hops))

            if not pending:
                if target.ownership and target.ownership not in (OWNERSHIP_DIRECT, OWNERSHIP_GLOBAL):
                    pending = target.ownership.split(".")
                else:
                    root_edge = self._root_edge(target)
                    if root_edge is not None and len(hops) < MAX_OWNERSHIP_DEPTH:
                        hops.append(root_edge)
                        return OwnershipResolution(ScopeKind.PATH, field=root.primary_key, hops=tuple(hops))
            current = target

        logger.warning(
            "Ownership path of %s does not reach %s; treating as global",
            start.entity,
            root.entity,
        )
        return GLOBAL
