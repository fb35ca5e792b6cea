"""Policy registry.

Maps entity names to ``ResourcePolicy`` subclasses. Follows the same pattern
as the validator and hook registries: explicit registration, usually through
the ``@policy`` decorator at import time.
"""

from collections.abc import Callable

from resourcegate.auth.permissions import ResourcePolicy

PolicyClass = type[ResourcePolicy]


class PolicyRegistry:
    """Registry for resource policy classes.

    Example:
        @policy("User")
        class UserPolicy(ResourcePolicy):
            def hidden_fields(self, caller):
                return {"email"} if caller is None else set()
    """

    _policies: dict[str, PolicyClass] = {}

    @classmethod
    def register(cls, entity: str, policy_cls: PolicyClass) -> None:
        """Register a policy class for an entity.

        Idempotent for the same class; registering a different class for an
        entity that already has one raises.
        """
        existing = cls._policies.get(entity)
        if existing is policy_cls:
            return
        if existing is not None:
            raise ValueError(
                f"Entity '{entity}' already has policy {existing.__name__}; "
                f"cannot register {policy_cls.__name__}"
            )
        cls._policies[entity] = policy_cls

    @classmethod
    def get(cls, entity: str) -> PolicyClass:
        """Policy class for an entity, the base ``ResourcePolicy`` when none is registered."""
        return cls._policies.get(entity, ResourcePolicy)

    @classmethod
    def is_registered(cls, entity: str) -> bool:
        return entity in cls._policies

    @classmethod
    def list_registered(cls) -> list[str]:
        return sorted(cls._policies.keys())

    @classmethod
    def clear(cls) -> None:
        """Clear all registrations. Primarily for testing."""
        cls._policies.clear()


def policy(entity: str) -> Callable[[PolicyClass], PolicyClass]:
    """Decorator to register a policy class for ``entity``."""

    def decorator(policy_cls: PolicyClass) -> PolicyClass:
        PolicyRegistry.register(entity, policy_cls)
        return policy_cls

    return decorator
