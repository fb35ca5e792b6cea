"""DataStore Protocol: the interface the access layer needs from storage."""

from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager
from typing import Any, Protocol, TypeVar, runtime_checkable

from resourcegate.core.predicates import Scope
from resourcegate.metadata.loader import RelationshipEdge, ResourceDescriptor

T = TypeVar("T")

Row = dict[str, Any]
SortSpec = list[tuple[str, bool]]  # (field, descending)


class StoreError(RuntimeError):
    """A storage-level failure."""


class ConstraintViolation(StoreError):
    """The store rejected a write (unique, not-null, ...).

    Attributes:
        field: Offending column when the store reports one
    """

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


@runtime_checkable
class DataStore(Protocol):
    """Interface all data stores must implement.

    Predicates and scopes are the declarative types from
    ``resourcegate.core.predicates``; a store compiles them however it likes.
    Trashed rows (soft-deleted) are excluded unless ``with_trashed`` or
    ``only_trashed`` is passed.
    """

    def initialize(self, descriptor: ResourceDescriptor) -> None: ...

    def find(
        self,
        descriptor: ResourceDescriptor,
        filter: Scope | None = None,
        *,
        scope: Scope | None = None,
        sort: SortSpec | None = None,
        with_trashed: bool = False,
        only_trashed: bool = False,
    ) -> list[Row]: ...

    def get(
        self,
        descriptor: ResourceDescriptor,
        id: Any,
        *,
        scope: Scope | None = None,
        with_trashed: bool = False,
        only_trashed: bool = False,
    ) -> Row | None: ...

    def insert(self, descriptor: ResourceDescriptor, data: Row) -> Row: ...

    def update(self, descriptor: ResourceDescriptor, row: Row, data: Row) -> Row: ...

    def delete(self, descriptor: ResourceDescriptor, row: Row) -> bool: ...

    def soft_delete(self, descriptor: ResourceDescriptor, row: Row) -> Row: ...

    def restore(self, descriptor: ResourceDescriptor, row: Row) -> Row: ...

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
    ) -> dict[str, Any]: ...

    def load_related(
        self,
        descriptor: ResourceDescriptor,
        rows: list[Row],
        relation: str,
    ) -> dict[Any, Row | list[Row] | None]: ...

    def transaction(self) -> AbstractContextManager[Any]: ...

    def with_transaction(self, fn: Callable[[], T]) -> T: ...

    def relationship_metadata(self, entity: str) -> tuple[RelationshipEdge, ...]: ...


def iter_chunks(items: list[Any], size: int) -> Iterator[list[Any]]:
    """Split ``items`` for IN (...) lists that must stay under parameter limits."""
    for start in range(0, len(items), size):
        yield items[start:start + size]
