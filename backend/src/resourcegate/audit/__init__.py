"""Audit trail."""

from resourcegate.audit.service import AuditRecorder
from resourcegate.audit.store import AuditLogStore
from resourcegate.audit.types import AuditEvent, AuditHook, compute_changes

__all__ = ["AuditEvent", "AuditHook", "AuditLogStore", "AuditRecorder", "compute_changes"]
