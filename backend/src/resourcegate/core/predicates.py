"""Declarative row predicates.

These are the only query vocabulary shared between the access layer and a
DataStore. The store decides how to evaluate them (the SQLite adapter
compiles them to SQL, with ``RelationExists`` becoming nested EXISTS
subqueries).
"""

from dataclasses import dataclass
from typing import Any, Union

from resourcegate.metadata.loader import RelationshipEdge


@dataclass(frozen=True)
class FieldEquals:
    field: str
    value: Any


@dataclass(frozen=True)
class FieldContains:
    """Case-insensitive substring match."""

    field: str
    term: str


@dataclass(frozen=True)
class RelationExists:
    """Some row reachable through ``hops`` satisfies ``condition``.

    ``condition`` is evaluated against the entity at the end of the chain.
    """

    hops: tuple[RelationshipEdge, ...]
    condition: "Predicate"


@dataclass(frozen=True)
class AllOf:
    predicates: tuple["Predicate", ...]


@dataclass(frozen=True)
class AnyOf:
    predicates: tuple["Predicate", ...]


class DenyAll:
    """Matches no row."""

    def __repr__(self) -> str:
        return "DENY_ALL"


class Unscoped:
    """No tenant restriction applies."""

    def __repr__(self) -> str:
        return "UNSCOPED"


DENY_ALL = DenyAll()
UNSCOPED = Unscoped()

Predicate = Union[FieldEquals, FieldContains, RelationExists, AllOf, AnyOf, DenyAll]
Scope = Union[Predicate, Unscoped]


def combine(*predicates: "Scope | None") -> Predicate | None:
    """AND together predicates, dropping None and UNSCOPED entries."""
    parts = [p for p in predicates if p is not None and not isinstance(p, Unscoped)]
    if any(isinstance(p, DenyAll) for p in parts):
        return DENY_ALL
    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    return AllOf(tuple(parts))
