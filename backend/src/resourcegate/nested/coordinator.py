"""Nested multi-operation batches.

A batch is a list of create/update operations across resources, applied
all-or-nothing. Processing runs through fixed phases:

RECEIVED -> STRUCTURALLY_VALIDATED -> PER_OPERATION_VALIDATED
    -> PER_OPERATION_AUTHORIZED -> EXECUTED -> RESPONDED

Any validation or authorization failure moves the batch to REJECTED before
a single write is attempted. Structure, size and allow-list checks make no
store calls at all.

Request body::

    {"operations": [{"model": "posts", "action": "create", "data": {...}},
                    {"model": "blogs", "action": "update", "id": 7, "data": {...}}]}

Response body::

    {"results": [{"model": "posts", "action": "create", "id": ..., "data": {...}}, ...]}

Result data is the stored row, unredacted.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from resourcegate.audit.service import AuditRecorder
from resourcegate.audit.types import AuditEvent
from resourcegate.config import NestedConfig
from resourcegate.core.context import AccessContext
from resourcegate.errors import (
    AuthenticationRequired,
    GatewayError,
    NotFound,
    StructuralError,
    TransactionFailure,
    Unauthorized,
    ValidationFailed,
)
from resourcegate.metadata.loader import ResourceDescriptor
from resourcegate.metadata.registry import ResourceRegistry
from resourcegate.persistence.adapter import DataStore, Row
from resourcegate.tenancy.scope import TenantScopeResolver
from resourcegate.validation.types import Validator

logger = logging.getLogger(__name__)

ACTIONS = ("create", "update")


class BatchState(Enum):
    RECEIVED = "received"
    STRUCTURALLY_VALIDATED = "structurallyValidated"
    PER_OPERATION_VALIDATED = "perOperationValidated"
    PER_OPERATION_AUTHORIZED = "perOperationAuthorized"
    EXECUTED = "executed"
    RESPONDED = "responded"
    REJECTED = "rejected"


@dataclass(frozen=True)
class NestedOperation:
    index: int
    slug: str
    action: str
    data: dict[str, Any]
    id: Any = None


@dataclass
class PreparedOperation:
    operation: NestedOperation
    descriptor: ResourceDescriptor
    accepted: dict[str, Any] = field(default_factory=dict)
    target: Row | None = None  # pre-loaded row for updates


@dataclass
class NestedBatch:
    """State of one batch as it moves through the phases."""

    payload: Any
    state: BatchState = BatchState.RECEIVED
    operations: list[NestedOperation] = field(default_factory=list)
    prepared: list[PreparedOperation] = field(default_factory=list)
    history: list[BatchState] = field(default_factory=lambda: [BatchState.RECEIVED])

    def advance(self, state: BatchState) -> None:
        self.state = state
        self.history.append(state)


class NestedCoordinator:
    """Validates, authorizes and applies a batch inside one store transaction.

    The transaction stays open across the awaits between operations, and the
    SQLite adapter's lock is held for all of it. Callers sharing the store
    must not run it concurrently with other store users; the gateway
    serializes every request under ``Gateway.lock``.
    """

    def __init__(
        self,
        registry: ResourceRegistry,
        store: DataStore,
        scopes: TenantScopeResolver,
        validator: Validator,
        config: NestedConfig | None = None,
        audit: AuditRecorder | None = None,
    ):
        self.registry = registry
        self.store = store
        self.scopes = scopes
        self.validator = validator
        self.config = config or NestedConfig()
        self.audit = audit or AuditRecorder()

    async def run(self, payload: Any, ctx: AccessContext, batch: NestedBatch | None = None) -> dict[str, Any]:
        """Process a batch payload and return the response body.

        Raises:
            StructuralError: Malformed batch, too many operations, a slug
                outside the allow-list, or an unknown slug
            ValidationFailed: One or more operations failed validation
                (errors from every operation are reported together)
            AuthenticationRequired / Unauthorized / NotFound: Authorization
                of an operation failed
            TransactionFailure: The store failed mid-batch; nothing was kept
        """
        batch = batch or NestedBatch(payload)
        try:
            if ctx.caller is None:
                raise AuthenticationRequired()
            batch.operations = self._parse(payload)
            self._check_guards(batch.operations)
            batch.advance(BatchState.STRUCTURALLY_VALIDATED)

            batch.prepared = self._validate(batch.operations, ctx)
            self._check_references(batch.prepared, ctx)
            batch.advance(BatchState.PER_OPERATION_VALIDATED)

            self._authorize(batch.prepared, ctx)
            batch.advance(BatchState.PER_OPERATION_AUTHORIZED)
        except GatewayError:
            batch.advance(BatchState.REJECTED)
            raise

        results, events = await self._execute(batch.prepared, ctx)
        batch.advance(BatchState.EXECUTED)

        self.audit.dispatch(events)
        batch.advance(BatchState.RESPONDED)
        return {"results": results}

    # ------------------------------------------------------------------
    # Structure and guards
    # ------------------------------------------------------------------

    def _parse(self, payload: Any) -> list[NestedOperation]:
        message = "The operations field is required and must be an array."
        if not isinstance(payload, dict) or not isinstance(payload.get("operations"), list):
            raise StructuralError({"operations": [message]}, message)

        errors: dict[str, list[str]] = {}
        operations = []
        for index, op in enumerate(payload["operations"]):
            key = f"operations.{index}"
            if not isinstance(op, dict):
                errors[key] = ["Each operation must be an object."]
                continue
            slug = op.get("model")
            action = op.get("action")
            if not slug or not isinstance(slug, str):
                errors[f"{key}.model"] = ["The model field is required."]
            if action not in ACTIONS:
                errors[f"{key}.action"] = ["The action must be create or update."]
            if not isinstance(op.get("data"), dict):
                errors[f"{key}.data"] = ["The data field is required and must be an object."]
            if action == "update" and "id" not in op:
                errors[f"{key}.id"] = ["The id field is required for update operations."]
            if not any(k.startswith(f"{key}.") for k in errors):
                operations.append(NestedOperation(index, slug, action, op["data"], op.get("id")))

        if errors:
            raise StructuralError(errors)
        return operations

    def _check_guards(self, operations: list[NestedOperation]) -> None:
        limit = self.config.max_operations
        if limit is not None and len(operations) > limit:
            raise StructuralError(
                {"operations": [f"Maximum {limit} operations allowed."]},
                "Too many operations.",
            )

        allowed = self.config.allowed_models
        if allowed is not None:
            for op in operations:
                if op.slug not in allowed:
                    raise StructuralError(
                        {f"operations.{op.index}.model": [f'Model "{op.slug}" is not allowed for nested operations.']},
                        "Operation not allowed.",
                    )

        unknown = {
            f"operations.{op.index}.model": [f'The model "{op.slug}" does not exist.']
            for op in operations
            if not self.registry.has(op.slug)
        }
        if unknown:
            raise StructuralError(unknown, "Unknown model.")

    # ------------------------------------------------------------------
    # Per-operation validation and authorization
    # ------------------------------------------------------------------

    def _validate(self, operations: list[NestedOperation], ctx: AccessContext) -> list[PreparedOperation]:
        errors: dict[str, list[str]] = {}
        prepared = []
        for op in operations:
            descriptor = self.registry.resolve(op.slug)
            action = "store" if op.action == "create" else "update"
            outcome = self.validator.validate(descriptor, action, op.data, ctx.role)
            for name, messages in outcome.errors.items():
                errors[f"operations.{op.index}.data.{name}"] = messages
            prepared.append(PreparedOperation(op, descriptor, outcome.accepted))
        if errors:
            raise ValidationFailed(errors)
        return prepared

    def _check_references(self, prepared: list[PreparedOperation], ctx: AccessContext) -> None:
        """Parent keys on path-scoped resources must point inside the caller's tenant."""
        errors: dict[str, list[str]] = {}
        for item in prepared:
            name = self.scopes.foreign_parent(self.store, item.descriptor.entity, item.accepted, ctx.tenant_id)
            if name is not None:
                errors[f"operations.{item.operation.index}.data.{name}"] = [f"The selected {name} is invalid."]
        if errors:
            raise ValidationFailed(errors)

    def _authorize(self, prepared: list[PreparedOperation], ctx: AccessContext) -> None:
        for item in prepared:
            op = item.operation
            policy = self.registry.policy_for(op.slug)
            if op.action == "create":
                if not policy.store(ctx.caller, ctx.tenant_id):
                    raise Unauthorized()
                continue

            row = self.store.get(
                item.descriptor,
                op.id,
                scope=self.scopes.scope_for(item.descriptor.entity, ctx.tenant_id),
            )
            if row is None:
                raise NotFound("Resource not found.")
            if not policy.update(ctx.caller, ctx.tenant_id, row):
                raise Unauthorized()
            item.target = row

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _execute(
        self,
        prepared: list[PreparedOperation],
        ctx: AccessContext,
    ) -> tuple[list[dict[str, Any]], list[AuditEvent | None]]:
        results: list[dict[str, Any]] = []
        events: list[AuditEvent | None] = []
        try:
            with self.store.transaction():
                for item in prepared:
                    # Cancellation point: a cancelled request aborts here and rolls back
                    await asyncio.sleep(0)
                    results.append(self._apply(item, ctx, events))
        except asyncio.CancelledError:
            logger.info("Nested batch of %d operations cancelled and rolled back", len(prepared))
            raise
        except Exception as e:
            logger.warning("Nested batch of %d operations rolled back: %s", len(prepared), e)
            raise TransactionFailure() from e

        logger.info("Nested batch of %d operations committed", len(prepared))
        return results, events

    def _apply(self, item: PreparedOperation, ctx: AccessContext, events: list[AuditEvent | None]) -> dict[str, Any]:
        op = item.operation
        descriptor = item.descriptor
        if op.action == "create":
            data = self.scopes.stamp_tenant(item.accepted, descriptor.entity, ctx.tenant_id)
            row = self.store.insert(descriptor, data)
            events.append(self.audit.build(descriptor, "created", None, row, ctx.caller, ctx.tenant_id))
        else:
            row = self.store.update(descriptor, item.target, item.accepted)
            events.append(self.audit.build(descriptor, "updated", item.target, row, ctx.caller, ctx.tenant_id))
        return {
            "model": op.slug,
            "action": op.action,
            "id": row[descriptor.primary_key],
            "data": row,
        }
