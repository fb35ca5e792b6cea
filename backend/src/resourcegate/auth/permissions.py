"""Permission checking for resource actions.

Permission strings take one of three forms:

- ``*`` grants everything
- ``{slug}.*`` grants every action on one resource
- ``{slug}.{action}`` grants a single action

Actions are ``index, show, store, update, destroy`` plus the soft-delete
actions ``trashed, restore, forceDelete``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from resourcegate.auth.types import Caller

if TYPE_CHECKING:
    from resourcegate.metadata.registry import ResourceRegistry

logger = logging.getLogger(__name__)

CRUD_ACTIONS = ("index", "show", "store", "update", "destroy")
SOFT_DELETE_ACTIONS = ("trashed", "restore", "forceDelete")
ALL_ACTIONS = CRUD_ACTIONS + SOFT_DELETE_ACTIONS


def permission_matches(permissions: Iterable[str], slug: str, action: str) -> bool:
    """Whether any permission in the set grants ``slug.action``."""
    wanted = {"*", f"{slug}.*", f"{slug}.{action}"}
    return any(p in wanted for p in permissions)


class PermissionEvaluator:
    """Pure permission check over a caller's role-assignment snapshot.

    Holds no state, so one instance is shared by every request.
    """

    def authorize(
        self,
        caller: Caller | None,
        tenant_id: str | None,
        slug: str,
        action: str,
    ) -> bool:
        """Check whether ``caller`` may perform ``action`` on ``slug``.

        Args:
            caller: The requesting identity, None when unauthenticated
            tenant_id: Restrict to assignments in this tenant; None gathers
                assignments across all tenants
            slug: Resource slug
            action: Action name (see ``ALL_ACTIONS``)

        Returns:
            True if any gathered assignment grants the action
        """
        if caller is None:
            return False
        for assignment in caller.assignments_for(tenant_id):
            if permission_matches(assignment.permissions, slug, action):
                return True
        return False


class ResourcePolicy:
    """Per-resource authorization wrapper.

    Binds to a fixed ``resource_slug`` or discovers it through the registry's
    policy index. Applications subclass it and register the subclass with
    ``@policy("Entity")`` to add caller-dependent hidden fields or tighter
    checks; the base class allows exactly what the permission strings grant.
    """

    resource_slug: str | None = None

    def __init__(self, evaluator: PermissionEvaluator | None = None):
        self.evaluator = evaluator or PermissionEvaluator()
        self._registry: ResourceRegistry | None = None

    def attach(self, registry: ResourceRegistry) -> None:
        self._registry = registry

    def resolve_resource_slug(self) -> str | None:
        """The slug this policy guards, or None when it cannot be determined."""
        if self.resource_slug:
            return self.resource_slug
        if self._registry is None:
            return None
        try:
            return self._registry.slug_for_policy(self)
        except LookupError:
            logger.warning("No resource registered for policy %s", type(self).__name__)
            return None

    def check_permission(self, caller: Caller | None, tenant_id: str | None, action: str) -> bool:
        slug = self.resolve_resource_slug()
        if not slug:
            return False
        return self.evaluator.authorize(caller, tenant_id, slug, action)

    def index(self, caller: Caller | None, tenant_id: str | None) -> bool:
        return self.check_permission(caller, tenant_id, "index")

    def show(self, caller: Caller | None, tenant_id: str | None, record: dict[str, Any]) -> bool:
        return self.check_permission(caller, tenant_id, "show")

    def store(self, caller: Caller | None, tenant_id: str | None) -> bool:
        return self.check_permission(caller, tenant_id, "store")

    def update(self, caller: Caller | None, tenant_id: str | None, record: dict[str, Any]) -> bool:
        return self.check_permission(caller, tenant_id, "update")

    def destroy(self, caller: Caller | None, tenant_id: str | None, record: dict[str, Any]) -> bool:
        return self.check_permission(caller, tenant_id, "destroy")

    def trashed(self, caller: Caller | None, tenant_id: str | None) -> bool:
        return self.check_permission(caller, tenant_id, "trashed")

    def restore(self, caller: Caller | None, tenant_id: str | None, record: dict[str, Any]) -> bool:
        return self.check_permission(caller, tenant_id, "restore")

    def force_delete(self, caller: Caller | None, tenant_id: str | None, record: dict[str, Any]) -> bool:
        return self.check_permission(caller, tenant_id, "forceDelete")

    def hidden_fields(self, caller: Caller | None) -> set[str]:
        """Extra fields to hide from ``caller``. Additive only."""
        return set()
