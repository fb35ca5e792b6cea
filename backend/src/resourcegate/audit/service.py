"""Audit event dispatch.

Builds events from before/after snapshots and hands them to the configured
hook. Hook failures are logged and swallowed: the write they describe has
already committed.
"""

import logging
from typing import Any

from resourcegate.audit.types import AuditEvent, AuditHook, compute_changes
from resourcegate.auth.types import Caller
from resourcegate.metadata.loader import ResourceDescriptor

logger = logging.getLogger(__name__)


class AuditRecorder:
    def __init__(self, hook: AuditHook | None = None):
        self.hook = hook

    def build(
        self,
        descriptor: ResourceDescriptor,
        action: str,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
        caller: Caller | None,
        tenant_id: str | None,
    ) -> AuditEvent | None:
        """Event for a write, or None when the resource is not audited."""
        if self.hook is None or not descriptor.audit.enabled:
            return None

        excluded = descriptor.audit.exclude
        before = {k: v for k, v in before.items() if k not in excluded} if before is not None else None
        after = {k: v for k, v in after.items() if k not in excluded} if after is not None else None
        old, new = compute_changes(before, after)

        source = after if after is not None else before
        return AuditEvent(
            entity=descriptor.entity,
            action=action,
            record_id=(source or {}).get(descriptor.primary_key),
            before=old,
            after=new,
            user_id=caller.user_id if caller else None,
            tenant_id=tenant_id,
        )

    def dispatch(self, events: list[AuditEvent | None]) -> None:
        for event in events:
            if event is None:
                continue
            try:
                self.hook.record(event)
            except Exception as e:
                logger.error(
                    "Audit hook failed for %s %s %s: %s",
                    event.entity,
                    event.action,
                    event.record_id,
                    e,
                )

    def record(
        self,
        descriptor: ResourceDescriptor,
        action: str,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
        caller: Caller | None,
        tenant_id: str | None,
    ) -> None:
        self.dispatch([self.build(descriptor, action, before, after, caller, tenant_id)])
