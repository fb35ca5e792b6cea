"""Persistence for the audit trail.

Uses a system table (_audit_logs). Value snapshots are stored as JSON text.
The store accepts a SQLAlchemy database URL string and creates its own
engine, so it works against any dialect SQLAlchemy supports.
"""

import json
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import create_engine, text

from resourcegate.audit.types import AuditEvent


class AuditLogStore:
    """Writes and reads audit events. Implements the AuditHook protocol."""

    def __init__(self, database_url: str):
        self._engine = create_engine(database_url)
        self._ensure_table()

    def _ensure_table(self) -> None:
        with self._engine.connect() as conn:
            conn.execute(text("""
                CREATE TABLE IF NOT EXISTS _audit_logs (
                    id              TEXT PRIMARY KEY,
                    entity_name     TEXT NOT NULL,
                    record_id       TEXT,
                    event           TEXT NOT NULL,
                    old_values      TEXT,
                    new_values      TEXT,
                    user_id         TEXT,
                    tenant_id       TEXT,
                    created_at      TEXT
                )
            """))
            conn.execute(text("""
                CREATE INDEX IF NOT EXISTS idx_audit_logs_record
                ON _audit_logs(entity_name, record_id)
            """))
            conn.commit()

    def record(self, event: AuditEvent) -> None:
        with self._engine.connect() as conn:
            conn.execute(
                text("""
                    INSERT INTO _audit_logs
                        (id, entity_name, record_id, event, old_values, new_values,
                         user_id, tenant_id, created_at)
                    VALUES
                        (:id, :entity_name, :record_id, :event, :old_values, :new_values,
                         :user_id, :tenant_id, :created_at)
                """),
                {
                    "id": uuid.uuid4().hex,
                    "entity_name": event.entity,
                    "record_id": None if event.record_id is None else str(event.record_id),
                    "event": event.action,
                    "old_values": json.dumps(event.before, default=str) if event.before is not None else None,
                    "new_values": json.dumps(event.after, default=str) if event.after is not None else None,
                    "user_id": event.user_id,
                    "tenant_id": event.tenant_id,
                    "created_at": datetime.now(UTC).isoformat(),
                },
            )
            conn.commit()

    def list_for(self, entity: str, record_id: Any | None = None) -> list[dict[str, Any]]:
        sql = "SELECT * FROM _audit_logs WHERE entity_name = :entity"
        params: dict[str, Any] = {"entity": entity}
        if record_id is not None:
            sql += " AND record_id = :record_id"
            params["record_id"] = str(record_id)
        sql += " ORDER BY created_at"
        with self._engine.connect() as conn:
            rows = conn.execute(text(sql), params).mappings().fetchall()
        return [
            {
                "id": r["id"],
                "entity": r["entity_name"],
                "recordId": r["record_id"],
                "event": r["event"],
                "oldValues": json.loads(r["old_values"]) if r["old_values"] else None,
                "newValues": json.loads(r["new_values"]) if r["new_values"] else None,
                "userId": r["user_id"],
                "tenantId": r["tenant_id"],
                "createdAt": r["created_at"],
            }
            for r in rows
        ]

    def dispose(self) -> None:
        self._engine.dispose()
