"""Resource registry.

Read-only after construction. Builds the bidirectional slug/entity/policy
index once so request-time lookups never scan.
"""

import logging
from collections.abc import Iterable, Mapping

from resourcegate.auth.permissions import PermissionEvaluator, ResourcePolicy
from resourcegate.auth.policies import PolicyRegistry
from resourcegate.errors import UnknownResource
from resourcegate.metadata.loader import ResourceDescriptor, RelationshipEdge

logger = logging.getLogger(__name__)


class ResourceRegistry:
    """Slug -> descriptor lookup plus the relationship edge table."""

    def __init__(
        self,
        descriptors: Iterable[ResourceDescriptor],
        policies: Mapping[str, type[ResourcePolicy]] | None = None,
        evaluator: PermissionEvaluator | None = None,
    ):
        """Build the registry.

        Args:
            descriptors: Loaded resource descriptors
            policies: Entity name -> policy class overrides; entities not
                listed fall back to ``PolicyRegistry``
            evaluator: Shared permission evaluator handed to every policy
        """
        self.evaluator = evaluator or PermissionEvaluator()
        self._by_slug: dict[str, ResourceDescriptor] = {}
        self._by_entity: dict[str, ResourceDescriptor] = {}
        self._policy_by_slug: dict[str, ResourcePolicy] = {}
        self._slug_by_policy: dict[int, str] = {}
        self._edges: dict[str, dict[str, RelationshipEdge]] = {}

        overrides = dict(policies or {})
        for descriptor in descriptors:
            if descriptor.slug in self._by_slug:
                raise ValueError(f"Duplicate resource slug '{descriptor.slug}'")
            self._by_slug[descriptor.slug] = descriptor
            self._by_entity[descriptor.entity] = descriptor
            self._edges[descriptor.entity] = {e.name: e for e in descriptor.relationships}

            policy_cls = overrides.get(descriptor.entity) or PolicyRegistry.get(descriptor.entity)
            instance = policy_cls(self.evaluator)
            instance.attach(self)
            self._policy_by_slug[descriptor.slug] = instance
            self._slug_by_policy[id(instance)] = descriptor.slug

        logger.debug("Registered %d resources", len(self._by_slug))

    @classmethod
    def from_loader(cls, loader, **kwargs) -> "ResourceRegistry":
        return cls(loader.resources.values(), **kwargs)

    def resolve(self, slug: str) -> ResourceDescriptor:
        descriptor = self._by_slug.get(slug)
        if descriptor is None:
            raise UnknownResource(slug)
        return descriptor

    def has(self, slug: str) -> bool:
        return slug in self._by_slug

    def entity(self, name: str) -> ResourceDescriptor | None:
        return self._by_entity.get(name)

    def slug_for_entity(self, name: str) -> str | None:
        descriptor = self._by_entity.get(name)
        return descriptor.slug if descriptor else None

    def edges(self, entity: str) -> tuple[RelationshipEdge, ...]:
        return tuple(self._edges.get(entity, {}).values())

    def edge(self, entity: str, relation: str) -> RelationshipEdge | None:
        return self._edges.get(entity, {}).get(relation)

    def policy_for(self, slug: str) -> ResourcePolicy:
        policy = self._policy_by_slug.get(slug)
        if policy is None:
            raise UnknownResource(slug)
        return policy

    def slug_for_policy(self, policy: ResourcePolicy) -> str:
        """Reverse lookup of the slug a policy instance was attached for.

        Raises:
            LookupError: If the policy was not created by this registry
        """
        try:
            return self._slug_by_policy[id(policy)]
        except KeyError:
            raise LookupError(f"Policy {type(policy).__name__} is not registered") from None

    def slugs(self) -> list[str]:
        return list(self._by_slug.keys())

    def descriptors(self) -> list[ResourceDescriptor]:
        return list(self._by_slug.values())
