"""Resource metadata: YAML loading and the resource registry."""

from resourcegate.metadata.loader import (
    AuditConfig,
    Cardinality,
    FieldDefinition,
    KeySide,
    MetadataLoader,
    PaginationConfig,
    QueryOptions,
    RelationConfig,
    RelationshipEdge,
    ResourceDescriptor,
    ValidationRules,
)
from resourcegate.metadata.registry import ResourceRegistry

__all__ = [
    "AuditConfig",
    "Cardinality",
    "FieldDefinition",
    "KeySide",
    "MetadataLoader",
    "PaginationConfig",
    "QueryOptions",
    "RelationConfig",
    "RelationshipEdge",
    "ResourceDescriptor",
    "ResourceRegistry",
    "ValidationRules",
]
