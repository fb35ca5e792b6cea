"""Per-(entity, caller) hidden field cache.

Hidden fields are the union of three layers:

- a baseline that is always hidden (secrets, timestamps)
- the descriptor's static ``hidden`` list
- the entity policy's ``hidden_fields(caller)``

Only the policy layer is caller-dependent, and it is what gets cached, keyed
by the caller id together with the caller's role assignments. A changed
assignment therefore misses the cache. The cache is process-wide state
shared by concurrent requests and is guarded by a lock.
"""

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from resourcegate.auth.permissions import ResourcePolicy
from resourcegate.auth.types import Caller, RoleAssignment
from resourcegate.metadata.loader import ResourceDescriptor

logger = logging.getLogger(__name__)

BASELINE_HIDDEN = frozenset({
    "password",
    "passwordHash",
    "rememberToken",
    "hasTemporaryPassword",
    "createdAt",
    "updatedAt",
    "deletedAt",
    "emailVerifiedAt",
})

ANONYMOUS = "<anonymous>"


@dataclass(frozen=True)
class RedactionKey:
    entity: str
    caller: str  # user id, or ANONYMOUS
    grants: frozenset[RoleAssignment] = frozenset()


class HiddenFieldsCache:
    """Memoises the policy layer per (entity, caller id, role assignments)."""

    def __init__(self, baseline: Iterable[str] = BASELINE_HIDDEN):
        self.baseline = frozenset(baseline)
        self._entries: dict[RedactionKey, frozenset[str]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key_for(entity: str, caller: Caller | None) -> RedactionKey:
        if caller is None:
            return RedactionKey(entity=entity, caller=ANONYMOUS)
        return RedactionKey(entity=entity, caller=caller.user_id, grants=frozenset(caller.assignments))

    def hidden_fields(
        self,
        descriptor: ResourceDescriptor,
        caller: Caller | None,
        policy: ResourcePolicy | None = None,
    ) -> frozenset[str]:
        """Every field to hide from ``caller`` on ``descriptor`` rows."""
        static = self.baseline | descriptor.hidden
        if policy is None:
            return static
        return static | self._policy_layer(descriptor, caller, policy)

    def _policy_layer(
        self,
        descriptor: ResourceDescriptor,
        caller: Caller | None,
        policy: ResourcePolicy,
    ) -> frozenset[str]:
        key = self.key_for(descriptor.entity, caller)
        with self._lock:
            cached = self._entries.get(key)
        if cached is not None:
            return cached

        # Evaluated outside the lock; racing writers for the same key keep
        # the first stored value.
        try:
            computed = frozenset(policy.hidden_fields(caller) or ())
        except Exception:
            logger.exception("Hidden-field policy for %s failed; applying static fields only", descriptor.entity)
            return frozenset()

        with self._lock:
            return self._entries.setdefault(key, computed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def redact(row: Mapping[str, Any], hidden: Iterable[str]) -> dict[str, Any]:
    """Copy of ``row`` without the hidden fields."""
    hidden = frozenset(hidden)
    return {k: v for k, v in row.items() if k not in hidden}
