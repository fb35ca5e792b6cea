"""Audit trail types."""

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass
class AuditEvent:
    """One write to be recorded.

    Attributes:
        entity: Entity name of the written row
        action: "created", "updated", "deleted", "restored" or "forceDeleted"
        record_id: Primary key of the row
        before: Changed fields before the write (None for creates)
        after: Changed fields after the write (None for deletes)
        user_id: Caller that performed the write
        tenant_id: Tenant the write happened in
    """

    entity: str
    action: str
    record_id: Any
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    user_id: str | None = None
    tenant_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class AuditHook(Protocol):
    """Side-effect hook invoked after each successful write."""

    def record(self, event: AuditEvent) -> None: ...


def compute_changes(
    before: dict[str, Any] | None,
    after: dict[str, Any] | None,
) -> tuple[dict[str, Any] | None, dict[str, Any] | None]:
    """Reduce before/after snapshots to the fields that differ.

    Creates and deletes keep their full snapshot on the populated side.
    """
    if before is None or after is None:
        return before, after

    old: dict[str, Any] = {}
    new: dict[str, Any] = {}
    for key in set(before) | set(after):
        if before.get(key) != after.get(key):
            old[key] = before.get(key)
            new[key] = after.get(key)
    return old, new
