"""Generic CRUD over registered resources.

Every action follows the same path: resolve the descriptor, check the
caller, narrow to the tenant, authorize through the resource's policy,
validate, write, audit, redact.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from resourcegate.audit.service import AuditRecorder
from resourcegate.core.context import AccessContext
from resourcegate.core.predicates import combine
from resourcegate.crud.query import (
    COUNT_SUFFIX,
    EXISTS_SUFFIX,
    ListParams,
    build_filter,
    build_search,
    include_tree,
    page_number,
    page_size,
    parse_includes,
    parse_sort,
    split_suffix,
)
from resourcegate.errors import AuthenticationRequired, NotFound, Unauthorized, ValidationFailed
from resourcegate.metadata.loader import ResourceDescriptor
from resourcegate.metadata.registry import ResourceRegistry
from resourcegate.persistence.adapter import ConstraintViolation, DataStore, Row
from resourcegate.redaction.cache import HiddenFieldsCache, redact
from resourcegate.tenancy.scope import TenantScopeResolver
from resourcegate.validation.types import Validator

logger = logging.getLogger(__name__)

SOFT_DELETE_MESSAGE = "This resource does not support soft deletes"


@dataclass
class ListResult:
    data: list[dict[str, Any]]
    pagination: dict[str, int] | None = None

    def headers(self) -> dict[str, str]:
        if self.pagination is None:
            return {}
        return {
            "X-Current-Page": str(self.pagination["page"]),
            "X-Last-Page": str(self.pagination["lastPage"]),
            "X-Per-Page": str(self.pagination["perPage"]),
            "X-Total": str(self.pagination["total"]),
        }


class ResourceService:
    def __init__(
        self,
        registry: ResourceRegistry,
        store: DataStore,
        scopes: TenantScopeResolver,
        redaction: HiddenFieldsCache,
        validator: Validator,
        audit: AuditRecorder | None = None,
    ):
        self.registry = registry
        self.data_store = store
        self.scopes = scopes
        self.redaction = redaction
        self.validator = validator
        self.audit = audit or AuditRecorder()

    # ------------------------------------------------------------------
    # Read actions
    # ------------------------------------------------------------------

    def index(self, slug: str, ctx: AccessContext, params: ListParams | None = None) -> ListResult:
        descriptor = self._descriptor(slug, "index", ctx)
        if not self.registry.policy_for(slug).index(ctx.caller, ctx.tenant_id):
            raise Unauthorized()
        return self._list(descriptor, ctx, params or ListParams(), only_trashed=False)

    def trashed(self, slug: str, ctx: AccessContext, params: ListParams | None = None) -> ListResult:
        descriptor = self._descriptor(slug, "trashed", ctx)
        if not self.registry.policy_for(slug).trashed(ctx.caller, ctx.tenant_id):
            raise Unauthorized()
        return self._list(descriptor, ctx, params or ListParams(), only_trashed=True)

    def show(self, slug: str, id: Any, ctx: AccessContext, include: str | None = None) -> dict[str, Any]:
        descriptor = self._descriptor(slug, "show", ctx)
        row = self._load(descriptor, id, ctx)
        if not self.registry.policy_for(slug).show(ctx.caller, ctx.tenant_id, row):
            raise Unauthorized()
        includes = parse_includes(descriptor, include)
        self._authorize_includes(descriptor, includes, ctx)
        return self._serialize(descriptor, [row], include_tree(includes), ctx)[0]

    # ------------------------------------------------------------------
    # Write actions
    # ------------------------------------------------------------------

    def store(self, slug: str, ctx: AccessContext, raw: dict[str, Any]) -> dict[str, Any]:
        descriptor = self._descriptor(slug, "store", ctx)
        if not self.registry.policy_for(slug).store(ctx.caller, ctx.tenant_id):
            raise Unauthorized()

        outcome = self.validator.validate(descriptor, "store", raw, ctx.role)
        if not outcome.valid:
            raise ValidationFailed(outcome.errors)

        self._check_parent(descriptor, outcome.accepted, ctx)
        data = self.scopes.stamp_tenant(outcome.accepted, descriptor.entity, ctx.tenant_id)
        with self._writing(descriptor):
            row = self.data_store.insert(descriptor, data)
        self.audit.record(descriptor, "created", None, row, ctx.caller, ctx.tenant_id)
        return self._serialize(descriptor, [row], {}, ctx)[0]

    def update(self, slug: str, id: Any, ctx: AccessContext, raw: dict[str, Any]) -> dict[str, Any]:
        descriptor = self._descriptor(slug, "update", ctx)
        self._check_tenant_root(descriptor, id, ctx)

        outcome = self.validator.validate(descriptor, "update", raw, ctx.role)
        if not outcome.valid:
            raise ValidationFailed(outcome.errors)

        row = self._load(descriptor, id, ctx)
        if not self.registry.policy_for(slug).update(ctx.caller, ctx.tenant_id, row):
            raise Unauthorized()
        self._check_parent(descriptor, outcome.accepted, ctx)

        with self._writing(descriptor):
            updated = self.data_store.update(descriptor, row, outcome.accepted)
        self.audit.record(descriptor, "updated", row, updated, ctx.caller, ctx.tenant_id)
        return self._serialize(descriptor, [updated], {}, ctx)[0]

    def destroy(self, slug: str, id: Any, ctx: AccessContext) -> None:
        descriptor = self._descriptor(slug, "destroy", ctx)
        row = self._load(descriptor, id, ctx)
        if not self.registry.policy_for(slug).destroy(ctx.caller, ctx.tenant_id, row):
            raise Unauthorized()

        with self.data_store.transaction():
            if descriptor.soft_deletes:
                self.data_store.soft_delete(descriptor, row)
            else:
                self.data_store.delete(descriptor, row)
        self.audit.record(descriptor, "deleted", row, None, ctx.caller, ctx.tenant_id)

    def restore(self, slug: str, id: Any, ctx: AccessContext) -> dict[str, Any]:
        descriptor = self._descriptor(slug, "restore", ctx)
        row = self._load(descriptor, id, ctx, only_trashed=True)
        if not self.registry.policy_for(slug).restore(ctx.caller, ctx.tenant_id, row):
            raise Unauthorized()

        with self.data_store.transaction():
            restored = self.data_store.restore(descriptor, row)
        self.audit.record(descriptor, "restored", row, restored, ctx.caller, ctx.tenant_id)
        return self._serialize(descriptor, [restored], {}, ctx)[0]

    def force_delete(self, slug: str, id: Any, ctx: AccessContext) -> None:
        descriptor = self._descriptor(slug, "forceDelete", ctx)
        row = self._load(descriptor, id, ctx, only_trashed=True)
        if not self.registry.policy_for(slug).force_delete(ctx.caller, ctx.tenant_id, row):
            raise Unauthorized()

        with self.data_store.transaction():
            self.data_store.delete(descriptor, row)
        self.audit.record(descriptor, "forceDeleted", row, None, ctx.caller, ctx.tenant_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _descriptor(self, slug: str, action: str, ctx: AccessContext) -> ResourceDescriptor:
        descriptor = self.registry.resolve(slug)
        if action in ("trashed", "restore", "forceDelete") and not descriptor.soft_deletes:
            raise NotFound(SOFT_DELETE_MESSAGE)
        if not descriptor.supports(action):
            raise NotFound(f"The {action} action is not available for {slug}")
        if ctx.caller is None and not descriptor.public:
            raise AuthenticationRequired()
        return descriptor

    def _check_parent(self, descriptor: ResourceDescriptor, data: Row, ctx: AccessContext) -> None:
        field = self.scopes.foreign_parent(self.data_store, descriptor.entity, data, ctx.tenant_id)
        if field is not None:
            raise ValidationFailed({field: [f"The selected {field} is invalid."]})

    def _check_tenant_root(self, descriptor: ResourceDescriptor, id: Any, ctx: AccessContext) -> None:
        """Another tenant's root row reads as missing, never as forbidden."""
        if ctx.tenant_id is None or not self.scopes.enabled:
            return
        if self.scopes.is_tenant_root(descriptor.entity) and str(id) != str(ctx.tenant_id):
            raise NotFound(f"{descriptor.display_name} not found")

    def _load(self, descriptor: ResourceDescriptor, id: Any, ctx: AccessContext, only_trashed: bool = False) -> Row:
        self._check_tenant_root(descriptor, id, ctx)
        row = self.data_store.get(
            descriptor,
            id,
            scope=self.scopes.scope_for(descriptor.entity, ctx.tenant_id),
            only_trashed=only_trashed,
        )
        if row is None:
            raise NotFound()
        return row

    @contextmanager
    def _writing(self, descriptor: ResourceDescriptor) -> Iterator[None]:
        """Write transaction reporting store constraint violations as validation errors."""
        try:
            with self.data_store.transaction():
                yield
        except ConstraintViolation as e:
            logger.info("Write to %s rejected by store: %s", descriptor.entity, e)
            field = e.field if e.field and descriptor.has_field(e.field) else "record"
            if "UNIQUE" in str(e).upper():
                message = f"The {field} has already been taken."
            else:
                message = f"The {field} is invalid."
            raise ValidationFailed({field: [message]}) from e

    def _relation_name(self, descriptor: ResourceDescriptor, segment: str) -> tuple[str, str | None]:
        """Include segment -> (relation name, Count/Exists suffix or None)."""
        if descriptor.relationship(segment) is not None:
            return segment, None
        return split_suffix(segment)

    def _list(
        self,
        descriptor: ResourceDescriptor,
        ctx: AccessContext,
        params: ListParams,
        only_trashed: bool,
    ) -> ListResult:
        predicate = combine(
            build_filter(descriptor, params.filters),
            build_search(descriptor, self.registry, params.search),
        )
        sort = parse_sort(descriptor, params.sort)
        includes = parse_includes(descriptor, params.include)
        self._authorize_includes(descriptor, includes, ctx)

        result = self.data_store.query(
            descriptor,
            predicate,
            scope=self.scopes.scope_for(descriptor.entity, ctx.tenant_id),
            sort=sort,
            page=page_number(params),
            per_page=page_size(descriptor, params),
            only_trashed=only_trashed,
        )
        data = self._serialize(descriptor, result["data"], include_tree(includes), ctx)
        return ListResult(data=data, pagination=result["pagination"])

    def _authorize_includes(self, descriptor: ResourceDescriptor, paths: list[str], ctx: AccessContext) -> None:
        """Each included relation needs ``index`` on the related resource."""
        for path in paths:
            current = descriptor
            for segment in path.split("."):
                base, _ = self._relation_name(current, segment)
                edge = current.relationship(base)
                if edge is None:
                    break
                related = self.registry.entity(edge.target)
                if related is None:
                    break
                policy = self.registry.policy_for(related.slug)
                if not policy.index(ctx.caller, ctx.tenant_id):
                    raise Unauthorized(f"You do not have permission to include {path}.")
                current = related

    def _hidden(self, descriptor: ResourceDescriptor, ctx: AccessContext) -> frozenset[str]:
        return self.redaction.hidden_fields(descriptor, ctx.caller, self.registry.policy_for(descriptor.slug))

    def _serialize(
        self,
        descriptor: ResourceDescriptor,
        rows: list[Row],
        includes: dict[str, dict],
        ctx: AccessContext,
    ) -> list[dict[str, Any]]:
        """Redact rows and attach requested relations, level by level."""
        hidden = self._hidden(descriptor, ctx)
        output = [redact(row, hidden) for row in rows]
        if not rows or not includes:
            return output

        pk = descriptor.primary_key
        for name, subtree in includes.items():
            base, suffix = self._relation_name(descriptor, name)
            edge = descriptor.relationship(base)
            if edge is None:
                continue
            related_map = self.data_store.load_related(descriptor, rows, base)

            if suffix in (COUNT_SUFFIX, EXISTS_SUFFIX):
                for raw, out in zip(rows, output):
                    value = related_map.get(raw[pk])
                    size = len(value) if isinstance(value, list) else int(value is not None)
                    out[name] = size if suffix == COUNT_SUFFIX else size > 0
                continue

            target = self.registry.entity(edge.target)
            related_rows: dict[Any, Row] = {}
            for value in related_map.values():
                for r in value if isinstance(value, list) else [value] if value else []:
                    related_rows[r[target.primary_key]] = r
            keys = list(related_rows)
            serialized = dict(zip(keys, self._serialize(target, list(related_rows.values()), subtree, ctx)))

            for raw, out in zip(rows, output):
                value = related_map.get(raw[pk])
                if isinstance(value, list):
                    out[base] = [serialized[r[target.primary_key]] for r in value]
                elif value is None:
                    out[base] = None
                else:
                    out[base] = serialized[value[target.primary_key]]
        return output

