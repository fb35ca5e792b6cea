"""Persistence for role assignments.

Uses a system table (_role_assignments) with one row per (user, tenant).
Permission sets are stored as a JSON array. Dialect-neutral via
SQLAlchemy Core, same as the audit log store.
"""

import json
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import create_engine, text

from resourcegate.auth.types import RoleAssignment

# Tenant-less assignments are stored under this key so (user, tenant) stays a
# usable primary key on every dialect.
NO_TENANT = ""


class RoleAssignmentStore:
    """Reads and writes RoleAssignment records."""

    def __init__(self, database_url: str):
        self._engine = create_engine(database_url)
        self._ensure_table()

    def _ensure_table(self) -> None:
        with self._engine.connect() as conn:
            conn.execute(text("""
                CREATE TABLE IF NOT EXISTS _role_assignments (
                    user_id       TEXT NOT NULL,
                    tenant_id     TEXT NOT NULL DEFAULT '',
                    role          TEXT,
                    permissions   TEXT NOT NULL,
                    created_at    TEXT,
                    updated_at    TEXT,
                    PRIMARY KEY (user_id, tenant_id)
                )
            """))
            conn.commit()

    def _row_to_assignment(self, row: Any) -> RoleAssignment:
        return RoleAssignment(
            user_id=row["user_id"],
            tenant_id=row["tenant_id"] or None,
            role=row["role"],
            permissions=frozenset(json.loads(row["permissions"])),
        )

    def grant(self, assignment: RoleAssignment) -> RoleAssignment:
        """Insert or replace the assignment for (user, tenant)."""
        now = datetime.now(UTC).isoformat()
        params = {
            "user_id": assignment.user_id,
            "tenant_id": assignment.tenant_id or NO_TENANT,
            "role": assignment.role,
            "permissions": json.dumps(sorted(assignment.permissions)),
            "now": now,
        }
        with self._engine.connect() as conn:
            updated = conn.execute(
                text("""
                    UPDATE _role_assignments
                    SET role = :role, permissions = :permissions, updated_at = :now
                    WHERE user_id = :user_id AND tenant_id = :tenant_id
                """),
                params,
            )
            if updated.rowcount == 0:
                conn.execute(
                    text("""
                        INSERT INTO _role_assignments
                            (user_id, tenant_id, role, permissions, created_at, updated_at)
                        VALUES (:user_id, :tenant_id, :role, :permissions, :now, :now)
                    """),
                    params,
                )
            conn.commit()
        return assignment

    def revoke(self, user_id: str, tenant_id: str | None) -> bool:
        with self._engine.connect() as conn:
            result = conn.execute(
                text("DELETE FROM _role_assignments WHERE user_id = :user_id AND tenant_id = :tenant_id"),
                {"user_id": user_id, "tenant_id": tenant_id or NO_TENANT},
            )
            conn.commit()
        return result.rowcount > 0

    def for_user(self, user_id: str) -> tuple[RoleAssignment, ...]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                text("SELECT * FROM _role_assignments WHERE user_id = :user_id ORDER BY tenant_id"),
                {"user_id": user_id},
            ).mappings().fetchall()
        return tuple(self._row_to_assignment(r) for r in rows)

    def list_all(self, tenant_id: str | None = None) -> list[RoleAssignment]:
        sql = "SELECT * FROM _role_assignments"
        params: dict[str, Any] = {}
        if tenant_id is not None:
            sql += " WHERE tenant_id = :tenant_id"
            params["tenant_id"] = tenant_id
        sql += " ORDER BY user_id, tenant_id"
        with self._engine.connect() as conn:
            rows = conn.execute(text(sql), params).mappings().fetchall()
        return [self._row_to_assignment(r) for r in rows]

    def dispose(self) -> None:
        self._engine.dispose()
