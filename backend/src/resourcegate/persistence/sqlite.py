"""SQLite data store."""

import itertools
import json
import logging
import sqlite3
import threading
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypeVar

from resourcegate.core.predicates import (
    AllOf,
    AnyOf,
    DenyAll,
    FieldContains,
    FieldEquals,
    RelationExists,
    Scope,
    Unscoped,
    combine,
)
from resourcegate.core.types import get_storage_type
from resourcegate.metadata.loader import (
    SOFT_DELETE_FIELD,
    Cardinality,
    KeySide,
    RelationshipEdge,
    ResourceDescriptor,
)
from resourcegate.metadata.registry import ResourceRegistry
from resourcegate.persistence.adapter import ConstraintViolation, Row, SortSpec, iter_chunks

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_IN_PARAMS = 500


def _q(name: str) -> str:
    """Quote an identifier."""
    return '"' + name.replace('"', '""') + '"'


def _like_term(term: str) -> str:
    """Lower-cased substring pattern with ``%`` and ``_`` matched literally."""
    escaped = term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class SQLiteAdapter:
    """SQLite data store.

    One connection in autocommit mode; ``transaction()`` issues explicit
    BEGIN/COMMIT (SAVEPOINTs when nested). Access to the connection is
    serialized with a re-entrant lock.
    """

    def __init__(self, db_path: Path | str, registry: ResourceRegistry):
        self.db_path = str(db_path)
        self.registry = registry
        self.conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._tx_depth = 0

    def connect(self) -> None:
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    def _require_conn(self) -> sqlite3.Connection:
        if not self.conn:
            raise RuntimeError("Database not connected")
        return self.conn

    def _execute(self, sql: str, params: list[Any] | tuple = ()) -> sqlite3.Cursor:
        conn = self._require_conn()
        with self._lock:
            try:
                return conn.execute(sql, params)
            except sqlite3.IntegrityError as e:
                raise ConstraintViolation(str(e), field=self._violated_field(str(e))) from e

    @staticmethod
    def _violated_field(message: str) -> str | None:
        # "UNIQUE constraint failed: post.slug"
        if "constraint failed:" not in message:
            return None
        column = message.split("constraint failed:", 1)[1].split(",")[0].strip()
        return column.rsplit(".", 1)[-1] or None

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def initialize(self, descriptor: ResourceDescriptor) -> None:
        """Create the table for a resource if it doesn't exist."""
        columns = []
        for field in descriptor.fields:
            col_def = f"{_q(field.name)} {get_storage_type(field.type)}"
            if field.primary_key:
                col_def += " PRIMARY KEY"
            elif field.unique:
                col_def += " UNIQUE"
            columns.append(col_def)

        sql = f"CREATE TABLE IF NOT EXISTS {_q(self._table_name(descriptor.entity))} ({', '.join(columns)})"
        self._execute(sql)

    def _table_name(self, entity_name: str) -> str:
        """Convert entity name to table name."""
        result = []
        for i, char in enumerate(entity_name):
            if char.isupper() and i > 0:
                result.append("_")
            result.append(char.lower())
        return "".join(result)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator["SQLiteAdapter"]:
        """All-or-nothing block. Any exception, including cancellation, rolls back."""
        conn = self._require_conn()
        with self._lock:
            depth = self._tx_depth
            conn.execute("BEGIN" if depth == 0 else f"SAVEPOINT sp_{depth}")
            self._tx_depth += 1
            try:
                yield self
            except BaseException:
                self._tx_depth -= 1
                if depth == 0:
                    conn.execute("ROLLBACK")
                else:
                    conn.execute(f"ROLLBACK TO SAVEPOINT sp_{depth}")
                    conn.execute(f"RELEASE SAVEPOINT sp_{depth}")
                raise
            else:
                self._tx_depth -= 1
                conn.execute("COMMIT" if depth == 0 else f"RELEASE SAVEPOINT sp_{depth}")

    def with_transaction(self, fn: Callable[[], T]) -> T:
        with self.transaction():
            return fn()

    @property
    def in_transaction(self) -> bool:
        return self._tx_depth > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(
        self,
        descriptor: ResourceDescriptor,
        id: Any,
        *,
        scope: Scope | None = None,
        with_trashed: bool = False,
        only_trashed: bool = False,
    ) -> Row | None:
        rows = self.find(
            descriptor,
            FieldEquals(descriptor.primary_key, id),
            scope=scope,
            with_trashed=with_trashed,
            only_trashed=only_trashed,
        )
        return rows[0] if rows else None

    def find(
        self,
        descriptor: ResourceDescriptor,
        filter: Scope | None = None,
        *,
        scope: Scope | None = None,
        sort: SortSpec | None = None,
        with_trashed: bool = False,
        only_trashed: bool = False,
    ) -> list[Row]:
        where, params = self._where(descriptor, filter, scope, with_trashed, only_trashed)
        order = self._order_clause(descriptor, sort)
        sql = f"SELECT t0.* FROM {_q(self._table_name(descriptor.entity))} t0{where}{order}"
        rows = self._execute(sql, params).fetchall()
        return [self._decode(descriptor, row) for row in rows]

    def query(
        self,
        descriptor: ResourceDescriptor,
        filter: Scope | None = None,
        *,
        scope: Scope | None = None,
        sort: SortSpec | None = None,
        page: int = 1,
        per_page: int | None = None,
        only_trashed: bool = False,
    ) -> dict[str, Any]:
        """Query records with filtering, sorting, and pagination.

        Without ``per_page`` every matching row is returned and pagination
        is None.
        """
        where, params = self._where(descriptor, filter, scope, False, only_trashed)
        table = _q(self._table_name(descriptor.entity))
        order = self._order_clause(descriptor, sort)

        if per_page is None:
            sql = f"SELECT t0.* FROM {table} t0{where}{order}"
            rows = self._execute(sql, params).fetchall()
            return {"data": [self._decode(descriptor, r) for r in rows], "pagination": None}

        page = max(page, 1)
        total = self._execute(f"SELECT COUNT(*) FROM {table} t0{where}", params).fetchone()[0]
        offset = (page - 1) * per_page
        sql = f"SELECT t0.* FROM {table} t0{where}{order} LIMIT ? OFFSET ?"
        rows = self._execute(sql, [*params, per_page, offset]).fetchall()

        return {
            "data": [self._decode(descriptor, r) for r in rows],
            "pagination": {
                "total": total,
                "page": page,
                "perPage": per_page,
                "lastPage": max(1, -(-total // per_page)),
            },
        }

    def load_related(
        self,
        descriptor: ResourceDescriptor,
        rows: list[Row],
        relation: str,
    ) -> dict[Any, Row | list[Row] | None]:
        """Batch-load one relation for ``rows``.

        Returns a map of each row's primary key to the related row (to-one),
        None, or a list of rows (to-many). Trashed related rows are skipped.
        """
        edge = self.registry.edge(descriptor.entity, relation)
        if edge is None:
            raise ValueError(f"{descriptor.entity} has no relation '{relation}'")
        target = self.registry.entity(edge.target)
        if target is None:
            raise ValueError(f"Relation '{relation}' targets unregistered entity {edge.target}")

        pk = descriptor.primary_key
        result: dict[Any, Row | list[Row] | None] = {}

        if edge.key_side is KeySide.SOURCE:
            keys = list({r[edge.foreign_key] for r in rows if r.get(edge.foreign_key) is not None})
            related = {
                r[target.primary_key]: r
                for r in self._fetch_in(target, target.primary_key, keys)
            }
            for row in rows:
                result[row[pk]] = related.get(row.get(edge.foreign_key))
            return result

        keys = list({r[pk] for r in rows})
        grouped: dict[Any, list[Row]] = {}
        for r in self._fetch_in(target, edge.foreign_key, keys):
            grouped.setdefault(r[edge.foreign_key], []).append(r)
        for row in rows:
            children = grouped.get(row[pk], [])
            if edge.cardinality is Cardinality.TO_MANY:
                result[row[pk]] = children
            else:
                result[row[pk]] = children[0] if children else None
        return result

    def _fetch_in(self, descriptor: ResourceDescriptor, column: str, keys: list[Any]) -> list[Row]:
        if not keys:
            return []
        table = _q(self._table_name(descriptor.entity))
        trashed = ""
        if descriptor.soft_deletes:
            trashed = f" AND t0.{_q(SOFT_DELETE_FIELD)} IS NULL"
        rows: list[Row] = []
        for chunk in iter_chunks(keys, MAX_IN_PARAMS):
            placeholders = ", ".join("?" for _ in chunk)
            sql = f"SELECT t0.* FROM {table} t0 WHERE t0.{_q(column)} IN ({placeholders}){trashed}"
            rows.extend(self._decode(descriptor, r) for r in self._execute(sql, chunk).fetchall())
        return rows

    def relationship_metadata(self, entity: str) -> tuple[RelationshipEdge, ...]:
        return self.registry.edges(entity)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, descriptor: ResourceDescriptor, data: Row) -> Row:
        """Insert a new record and return it as stored."""
        data = dict(data)
        pk = descriptor.primary_key
        if data.get(pk) is None:
            data[pk] = uuid.uuid4().hex

        now = datetime.now(UTC).isoformat()
        names = descriptor.field_names
        if "createdAt" in names:
            data.setdefault("createdAt", now)
        if "updatedAt" in names:
            data.setdefault("updatedAt", now)

        columns = [n for n in names if n in data]
        values = [self._encode(descriptor, n, data[n]) for n in columns]
        placeholders = ", ".join("?" for _ in columns)
        sql = (
            f"INSERT INTO {_q(self._table_name(descriptor.entity))} "
            f"({', '.join(_q(c) for c in columns)}) VALUES ({placeholders})"
        )
        self._execute(sql, values)
        return self.get(descriptor, data[pk], with_trashed=True)

    def update(self, descriptor: ResourceDescriptor, row: Row, data: Row) -> Row:
        """Apply ``data`` to an existing row; the primary key never changes."""
        data = dict(data)
        if "updatedAt" in descriptor.field_names:
            data["updatedAt"] = datetime.now(UTC).isoformat()

        pk = descriptor.primary_key
        columns = [n for n in descriptor.field_names if n in data and n != pk]
        if columns:
            set_clause = ", ".join(f"{_q(c)} = ?" for c in columns)
            values = [self._encode(descriptor, c, data[c]) for c in columns]
            sql = f"UPDATE {_q(self._table_name(descriptor.entity))} SET {set_clause} WHERE {_q(pk)} = ?"
            self._execute(sql, [*values, row[pk]])
        return self.get(descriptor, row[pk], with_trashed=True)

    def delete(self, descriptor: ResourceDescriptor, row: Row) -> bool:
        """Permanently delete a record."""
        pk = descriptor.primary_key
        sql = f"DELETE FROM {_q(self._table_name(descriptor.entity))} WHERE {_q(pk)} = ?"
        return self._execute(sql, [row[pk]]).rowcount > 0

    def soft_delete(self, descriptor: ResourceDescriptor, row: Row) -> Row:
        return self._set_deleted_at(descriptor, row, datetime.now(UTC).isoformat())

    def restore(self, descriptor: ResourceDescriptor, row: Row) -> Row:
        return self._set_deleted_at(descriptor, row, None)

    def _set_deleted_at(self, descriptor: ResourceDescriptor, row: Row, value: str | None) -> Row:
        if not descriptor.soft_deletes:
            raise ValueError(f"{descriptor.entity} does not support soft deletes")
        pk = descriptor.primary_key
        sql = (
            f"UPDATE {_q(self._table_name(descriptor.entity))} "
            f"SET {_q(SOFT_DELETE_FIELD)} = ? WHERE {_q(pk)} = ?"
        )
        self._execute(sql, [value, row[pk]])
        return self.get(descriptor, row[pk], with_trashed=True)

    # ------------------------------------------------------------------
    # Predicate compilation
    # ------------------------------------------------------------------

    def _where(
        self,
        descriptor: ResourceDescriptor,
        filter: Scope | None,
        scope: Scope | None,
        with_trashed: bool,
        only_trashed: bool,
    ) -> tuple[str, list[Any]]:
        conditions: list[str] = []
        params: list[Any] = []

        predicate = combine(scope, filter)
        if predicate is not None:
            sql, values = self._compile(predicate, descriptor, "t0", itertools.count(1))
            conditions.append(sql)
            params.extend(values)

        if descriptor.soft_deletes:
            if only_trashed:
                conditions.append(f"t0.{_q(SOFT_DELETE_FIELD)} IS NOT NULL")
            elif not with_trashed:
                conditions.append(f"t0.{_q(SOFT_DELETE_FIELD)} IS NULL")

        if not conditions:
            return "", params
        return " WHERE " + " AND ".join(conditions), params

    def _compile(
        self,
        predicate: Any,
        descriptor: ResourceDescriptor,
        alias: str,
        aliases: Iterator[int],
    ) -> tuple[str, list[Any]]:
        """Translate a predicate into SQL evaluated against ``alias``."""
        if isinstance(predicate, FieldEquals):
            column = f"{alias}.{_q(predicate.field)}"
            if predicate.value is None:
                return f"{column} IS NULL", []
            return f"{column} = ?", [predicate.value]

        if isinstance(predicate, FieldContains):
            return f"LOWER({alias}.{_q(predicate.field)}) LIKE ? ESCAPE '\\'", [_like_term(predicate.term)]

        if isinstance(predicate, (AllOf, AnyOf)):
            if not predicate.predicates:
                return ("1 = 1", []) if isinstance(predicate, AllOf) else ("1 = 0", [])
            joiner = " AND " if isinstance(predicate, AllOf) else " OR "
            parts, params = [], []
            for p in predicate.predicates:
                sql, values = self._compile(p, descriptor, alias, aliases)
                parts.append(sql)
                params.extend(values)
            return "(" + joiner.join(parts) + ")", params

        if isinstance(predicate, RelationExists):
            return self._compile_exists(predicate.hops, predicate.condition, descriptor, alias, aliases)

        if isinstance(predicate, DenyAll):
            return "1 = 0", []

        if isinstance(predicate, Unscoped):
            return "1 = 1", []

        raise TypeError(f"Unsupported predicate: {predicate!r}")

    def _compile_exists(
        self,
        hops: tuple[RelationshipEdge, ...],
        condition: Any,
        source: ResourceDescriptor,
        source_alias: str,
        aliases: Iterator[int],
    ) -> tuple[str, list[Any]]:
        """Nested EXISTS subqueries, one per hop."""
        edge = hops[0]
        target = self.registry.entity(edge.target)
        if target is None:
            raise ValueError(f"Relation {edge.source}.{edge.name} targets unregistered {edge.target}")

        alias = f"t{next(aliases)}"
        if edge.key_side is KeySide.SOURCE:
            join = f"{alias}.{_q(target.primary_key)} = {source_alias}.{_q(edge.foreign_key)}"
        else:
            join = f"{alias}.{_q(edge.foreign_key)} = {source_alias}.{_q(source.primary_key)}"

        if len(hops) > 1:
            inner, params = self._compile_exists(hops[1:], condition, target, alias, aliases)
        else:
            inner, params = self._compile(condition, target, alias, aliases)

        trashed = ""
        if target.soft_deletes:
            trashed = f" AND {alias}.{_q(SOFT_DELETE_FIELD)} IS NULL"

        table = _q(self._table_name(target.entity))
        return f"EXISTS (SELECT 1 FROM {table} {alias} WHERE {join}{trashed} AND {inner})", params

    def _order_clause(self, descriptor: ResourceDescriptor, sort: SortSpec | None) -> str:
        if not sort:
            return ""
        parts = []
        for field, descending in sort:
            if not descriptor.has_field(field):
                raise ValueError(f"Unknown sort field '{field}'")
            parts.append(f"t0.{_q(field)} {'DESC' if descending else 'ASC'}")
        return " ORDER BY " + ", ".join(parts)

    # ------------------------------------------------------------------
    # Value conversion
    # ------------------------------------------------------------------

    def _encode(self, descriptor: ResourceDescriptor, name: str, value: Any) -> Any:
        field = descriptor.get_field(name)
        if field is None or value is None:
            return value
        if field.type == "json":
            return json.dumps(value)
        if field.type == "boolean":
            if isinstance(value, str):
                return 1 if value in ("true", "1") else 0
            return 1 if value else 0
        return value

    def _decode(self, descriptor: ResourceDescriptor, row: sqlite3.Row) -> Row:
        record = dict(row)
        for field in descriptor.fields:
            value = record.get(field.name)
            if value is None:
                continue
            if field.type == "json" and isinstance(value, str):
                record[field.name] = json.loads(value)
            elif field.type == "boolean":
                record[field.name] = bool(value)
        return record
