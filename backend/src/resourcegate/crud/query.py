"""List query options: filter, sort, search, include and pagination.

Every name in a query string is checked against the descriptor's allowed
lists before it reaches the store.
"""

from dataclasses import dataclass, field
from typing import Any

from resourcegate.core.predicates import AnyOf, FieldContains, FieldEquals, Predicate, RelationExists, combine
from resourcegate.core.types import get_field_type
from resourcegate.errors import InvalidQuery, Unauthorized
from resourcegate.metadata.loader import ResourceDescriptor
from resourcegate.metadata.registry import ResourceRegistry

MIN_PER_PAGE = 1
MAX_PER_PAGE = 100

COUNT_SUFFIX = "Count"
EXISTS_SUFFIX = "Exists"


@dataclass
class ListParams:
    """Raw list options as they arrive from the query string."""

    filters: dict[str, str] = field(default_factory=dict)
    sort: str | None = None
    search: str | None = None
    include: str | None = None
    per_page: str | None = None
    page: str | None = None


def clamp_per_page(value: Any) -> int:
    try:
        per_page = int(value)
    except (TypeError, ValueError):
        per_page = 0
    return max(MIN_PER_PAGE, min(per_page, MAX_PER_PAGE))


def page_size(descriptor: ResourceDescriptor, params: ListParams) -> int | None:
    """Requested page size clamped to [1, 100]; None when the list is unpaginated."""
    if params.per_page is not None:
        return clamp_per_page(params.per_page)
    if descriptor.pagination.enabled:
        return clamp_per_page(descriptor.pagination.per_page)
    return None


def page_number(params: ListParams) -> int:
    try:
        return max(1, int(params.page or 1))
    except ValueError:
        return 1


def build_filter(descriptor: ResourceDescriptor, filters: dict[str, str]) -> Predicate | None:
    """``filter[field]=value`` pairs as one predicate.

    Text fields match partially, everything else exactly. A comma-separated
    value matches any of its parts.
    """
    if not filters:
        return None
    if not descriptor.query.filters:
        raise Unauthorized("Filters are not allowed")

    unknown = sorted(set(filters) - descriptor.query.filters)
    if unknown:
        raise InvalidQuery(f"Requested filter(s) `{', '.join(unknown)}` are not allowed.")

    parts = []
    for name, raw in filters.items():
        field_def = descriptor.get_field(name)
        textual = field_def is not None and get_field_type(field_def.type).textual
        values = [v for v in str(raw).split(",") if v != ""] or [""]
        if textual:
            options = tuple(FieldContains(name, v) for v in values)
        else:
            options = tuple(FieldEquals(name, v) for v in values)
        parts.append(options[0] if len(options) == 1 else AnyOf(options))
    return combine(*parts)


def build_search(descriptor: ResourceDescriptor, registry: ResourceRegistry, term: str | None) -> Predicate | None:
    """Case-insensitive search across the descriptor's search columns.

    ``relation.field`` entries search through the relation.
    """
    if not term or not descriptor.query.search:
        return None
    options: list[Predicate] = []
    for column in descriptor.query.search:
        if "." in column:
            relation, field_name = column.split(".", 1)
            edge = registry.edge(descriptor.entity, relation)
            if edge is None:
                raise InvalidQuery(f"Search column `{column}` names an unknown relation.")
            options.append(RelationExists((edge,), FieldContains(field_name, term)))
        else:
            options.append(FieldContains(column, term))
    return AnyOf(tuple(options))


def parse_sort(descriptor: ResourceDescriptor, sort: str | None) -> list[tuple[str, bool]]:
    """``-createdAt,title`` -> [("createdAt", True), ("title", False)]."""
    explicit = bool(sort)
    order = sort if explicit else descriptor.query.default_sort
    if not order:
        return []
    result = []
    for part in order.split(","):
        part = part.strip()
        if not part:
            continue
        descending = part.startswith("-")
        name = part.lstrip("-")
        if explicit and name not in descriptor.query.sorts:
            raise InvalidQuery(f"Requested sort(s) `{name}` is not allowed.")
        result.append((name, descending))
    return result


def split_suffix(segment: str) -> tuple[str, str | None]:
    for suffix in (COUNT_SUFFIX, EXISTS_SUFFIX):
        if segment.endswith(suffix) and len(segment) > len(suffix):
            return segment[: -len(suffix)], suffix
    return segment, None


def parse_includes(descriptor: ResourceDescriptor, include: str | None) -> list[str]:
    """Requested include paths that the descriptor allows.

    A path is allowed when it, or a longer allowed path it prefixes, is in
    the allowed list. Count/Exists suffixes are allowed for allowed bases.
    """
    if not include:
        return []
    requested = [p.strip() for p in include.split(",") if p.strip()]
    allowed = descriptor.query.includes
    prefixes = set()
    for path in allowed:
        segments = path.split(".")
        for i in range(1, len(segments) + 1):
            prefixes.add(".".join(segments[:i]))

    accepted, rejected = [], []
    for path in requested:
        if path in prefixes:
            accepted.append(path)
            continue
        base, suffix = split_suffix(path)
        if suffix and "." not in path and base in prefixes:
            accepted.append(path)
            continue
        rejected.append(path)
    if rejected:
        raise InvalidQuery(f"Requested include(s) `{', '.join(rejected)}` are not allowed.")
    return accepted


def include_tree(paths: list[str]) -> dict[str, dict]:
    """["post.blog", "comments"] -> {"post": {"blog": {}}, "comments": {}}."""
    tree: dict[str, dict] = {}
    for path in paths:
        node = tree
        for segment in path.split("."):
            node = node.setdefault(segment, {})
    return tree
