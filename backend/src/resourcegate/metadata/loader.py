"""Load and resolve resource metadata from YAML files."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

OWNERSHIP_DIRECT = "direct"
OWNERSHIP_GLOBAL = "global"

TIMESTAMP_FIELDS = ("createdAt", "updatedAt")
SOFT_DELETE_FIELD = "deletedAt"


@dataclass(frozen=True)
class ValidationRules:
    required: bool = False
    min: float | None = None
    max: float | None = None
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None


@dataclass(frozen=True)
class RelationConfig:
    """Configuration for a relation (foreign key) field."""

    entity: str  # The related entity name
    name: str  # Relation name used in ownership paths and includes


@dataclass(frozen=True)
class FieldDefinition:
    name: str
    type: str
    display_name: str
    primary_key: bool = False
    read_only: bool = False
    unique: bool = False
    options: tuple[str, ...] = ()
    validation: ValidationRules = field(default_factory=ValidationRules)
    relation: RelationConfig | None = None


class Cardinality(Enum):
    TO_ONE = "toOne"
    TO_MANY = "toMany"


class KeySide(Enum):
    """Which side of a relationship stores the foreign key column."""

    SOURCE = "source"
    TARGET = "target"


@dataclass(frozen=True)
class RelationshipEdge:
    """A declared relation between two entity types.

    Attributes:
        source: Entity declaring the relation
        name: Relation name (e.g. "post", "comments")
        target: Related entity name
        cardinality: TO_ONE (belongsTo/hasOne) or TO_MANY (hasMany)
        key_side: SOURCE when the source row holds the FK (belongsTo),
            TARGET when the related rows hold it (hasOne/hasMany)
        foreign_key: The FK column name on the key side
    """

    source: str
    name: str
    target: str
    cardinality: Cardinality
    key_side: KeySide
    foreign_key: str


@dataclass(frozen=True)
class QueryOptions:
    filters: frozenset[str] = frozenset()
    sorts: frozenset[str] = frozenset()
    default_sort: str | None = None
    includes: frozenset[str] = frozenset()
    search: tuple[str, ...] = ()


@dataclass(frozen=True)
class PaginationConfig:
    enabled: bool = False
    per_page: int = 15


@dataclass(frozen=True)
class AuditConfig:
    enabled: bool = False
    exclude: frozenset[str] = frozenset({"password", "rememberToken"})


@dataclass(frozen=True)
class ResourceDescriptor:
    """Everything the access layer knows about one registered resource.

    ``validation_sets`` maps an action ("store"/"update") to a role-keyed
    mapping of ``{field: presence}`` where presence is "rules" (use the
    field's own rules), "required" or "optional". The "*" role is the
    fallback for callers whose role has no entry.
    """

    slug: str
    entity: str
    display_name: str
    primary_key: str
    fields: tuple[FieldDefinition, ...]
    fillable: frozenset[str]
    query: QueryOptions = field(default_factory=QueryOptions)
    pagination: PaginationConfig = field(default_factory=PaginationConfig)
    soft_deletes: bool = False
    ownership: str | None = None
    hidden: frozenset[str] = frozenset()
    relationships: tuple[RelationshipEdge, ...] = ()
    validation_sets: dict[str, dict[str, dict[str, str]]] = field(default_factory=dict)
    audit: AuditConfig = field(default_factory=AuditConfig)
    public: bool = False
    except_actions: frozenset[str] = frozenset()

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    def get_field(self, name: str) -> FieldDefinition | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def has_field(self, name: str) -> bool:
        return self.get_field(name) is not None

    def relationship(self, name: str) -> RelationshipEdge | None:
        for edge in self.relationships:
            if edge.name == name:
                return edge
        return None

    def supports(self, action: str) -> bool:
        """Whether an action is routed for this resource."""
        if action in self.except_actions:
            return False
        if action in ("trashed", "restore", "forceDelete"):
            return self.soft_deletes
        return True


class MetadataLoader:
    """Loads resource definitions from ``resources/*.yaml`` files."""

    def __init__(self, metadata_path: Path):
        self.metadata_path = Path(metadata_path)
        self.resources: dict[str, ResourceDescriptor] = {}

    def load_all(self) -> None:
        """Load all resources and validate cross-references."""
        resources_path = self.metadata_path / "resources"
        if not resources_path.exists():
            logger.warning("No resources directory at %s", resources_path)
            return

        entities: dict[str, str] = {}
        for yaml_file in sorted(resources_path.glob("*.yaml")):
            with open(yaml_file) as f:
                data = yaml.safe_load(f)
            if not data or "resource" not in data:
                continue
            descriptor = self._resolve_resource(data)
            if descriptor.slug in self.resources:
                raise ValueError(f"Duplicate resource slug '{descriptor.slug}' in {yaml_file.name}")
            if descriptor.entity in entities:
                raise ValueError(
                    f"Entity '{descriptor.entity}' is registered by both "
                    f"'{entities[descriptor.entity]}' and '{descriptor.slug}'"
                )
            entities[descriptor.entity] = descriptor.slug
            self.resources[descriptor.slug] = descriptor

        self._validate_relationships(set(entities))

    def load_dicts(self, documents: list[dict[str, Any]]) -> None:
        """Load resources from already-parsed documents (same shape as the YAML)."""
        for data in documents:
            descriptor = self._resolve_resource(data)
            if descriptor.slug in self.resources:
                raise ValueError(f"Duplicate resource slug '{descriptor.slug}'")
            self.resources[descriptor.slug] = descriptor
        self._validate_relationships({d.entity for d in self.resources.values()})

    def _validate_relationships(self, entity_names: set[str]) -> None:
        for descriptor in self.resources.values():
            for edge in descriptor.relationships:
                if edge.target not in entity_names:
                    raise ValueError(
                        f"Resource '{descriptor.slug}' relation '{edge.name}' "
                        f"targets unknown entity '{edge.target}'"
                    )

    def _resolve_resource(self, data: dict) -> ResourceDescriptor:
        """Resolve one resource document into a descriptor."""
        slug = data["resource"]
        entity = data.get("entity") or self._to_entity_name(slug)

        fields = [self._resolve_field(f) for f in data.get("fields", [])]
        names = {f.name for f in fields}

        if not any(f.primary_key for f in fields):
            if "id" in names:
                raise ValueError(f"Resource '{slug}' field 'id' must be marked primaryKey")
            fields.insert(0, FieldDefinition(name="id", type="id", display_name="Id", primary_key=True))
        primary_key = next(f.name for f in fields if f.primary_key)

        # Timestamps are on by default, matching the write path of the adapter
        if data.get("timestamps", True):
            for ts in TIMESTAMP_FIELDS:
                if ts not in names:
                    fields.append(
                        FieldDefinition(name=ts, type="datetime", display_name=self._to_display_name(ts), read_only=True)
                    )

        soft_deletes = bool(data.get("softDeletes", False))
        if soft_deletes and SOFT_DELETE_FIELD not in names:
            fields.append(
                FieldDefinition(name=SOFT_DELETE_FIELD, type="datetime", display_name="Deleted At", read_only=True)
            )

        fillable = data.get("fillable")
        if fillable is None:
            fillable = [f.name for f in fields if not f.primary_key and not f.read_only]

        relationships = self._resolve_relationships(entity, fields, data.get("relationships", []))

        query_data = data.get("query", {}) or {}
        query = QueryOptions(
            filters=frozenset(query_data.get("filters", [])),
            sorts=frozenset(query_data.get("sorts", [])),
            default_sort=query_data.get("defaultSort"),
            includes=frozenset(query_data.get("includes", [])),
            search=tuple(query_data.get("search", [])),
        )

        pagination_data = data.get("pagination", {}) or {}
        pagination = PaginationConfig(
            enabled=bool(pagination_data.get("enabled", False)),
            per_page=int(pagination_data.get("perPage", 15)),
        )

        audit_data = data.get("audit", {}) or {}
        audit = AuditConfig(
            enabled=bool(audit_data.get("enabled", False)),
            exclude=frozenset(audit_data.get("exclude", ["password", "rememberToken"])),
        )

        ownership = data.get("ownership")
        if ownership is not None and not isinstance(ownership, str):
            raise ValueError(f"Resource '{slug}' ownership must be a string")

        return ResourceDescriptor(
            slug=slug,
            entity=entity,
            display_name=data.get("displayName", entity),
            primary_key=primary_key,
            fields=tuple(fields),
            fillable=frozenset(fillable),
            query=query,
            pagination=pagination,
            soft_deletes=soft_deletes,
            ownership=ownership or None,
            hidden=frozenset(data.get("hidden", [])),
            relationships=relationships,
            validation_sets=self._resolve_validation_sets(slug, data.get("validation", {}) or {}),
            audit=audit,
            public=bool(data.get("public", False)),
            except_actions=frozenset(data.get("exceptActions", [])),
        )

    def _resolve_field(self, data: dict) -> FieldDefinition:
        """Convert field dict to FieldDefinition."""
        name = data["name"]
        field_type = data.get("type", "string")

        validation_data = data.get("validation", {}) or {}
        validation = ValidationRules(
            required=validation_data.get("required", False),
            min=validation_data.get("min"),
            max=validation_data.get("max"),
            min_length=validation_data.get("minLength"),
            max_length=validation_data.get("maxLength"),
            pattern=validation_data.get("pattern"),
        )

        relation = None
        relation_data = data.get("relation")
        if relation_data:
            relation = RelationConfig(
                entity=relation_data["entity"],
                name=relation_data.get("name") or self._relation_name(name),
            )

        return FieldDefinition(
            name=name,
            type=field_type,
            display_name=data.get("displayName", self._to_display_name(name)),
            primary_key=data.get("primaryKey", False),
            read_only=data.get("readOnly", False),
            unique=data.get("unique", False),
            options=tuple(
                o.get("value") if isinstance(o, dict) else o for o in (data.get("options") or [])
            ),
            validation=validation,
            relation=relation,
        )

    def _resolve_relationships(
        self,
        entity: str,
        fields: list[FieldDefinition],
        declared: list[dict],
    ) -> tuple[RelationshipEdge, ...]:
        """Build the edge table: relation fields first, then declared relations."""
        edges: dict[str, RelationshipEdge] = {}

        for f in fields:
            if f.relation:
                edges[f.relation.name] = RelationshipEdge(
                    source=entity,
                    name=f.relation.name,
                    target=f.relation.entity,
                    cardinality=Cardinality.TO_ONE,
                    key_side=KeySide.SOURCE,
                    foreign_key=f.name,
                )

        for rel in declared:
            kind = rel.get("type", "belongsTo")
            name = rel["name"]
            if kind == "belongsTo":
                edge = RelationshipEdge(
                    source=entity,
                    name=name,
                    target=rel["entity"],
                    cardinality=Cardinality.TO_ONE,
                    key_side=KeySide.SOURCE,
                    foreign_key=rel.get("foreignKey", f"{name}Id"),
                )
            elif kind in ("hasOne", "hasMany"):
                if "foreignKey" not in rel:
                    raise ValueError(f"Relation '{entity}.{name}' ({kind}) requires foreignKey")
                edge = RelationshipEdge(
                    source=entity,
                    name=name,
                    target=rel["entity"],
                    cardinality=Cardinality.TO_ONE if kind == "hasOne" else Cardinality.TO_MANY,
                    key_side=KeySide.TARGET,
                    foreign_key=rel["foreignKey"],
                )
            else:
                raise ValueError(f"Relation '{entity}.{name}' has unknown type '{kind}'")
            edges[name] = edge

        return tuple(edges.values())

    def _resolve_validation_sets(self, slug: str, data: dict) -> dict[str, dict[str, dict[str, str]]]:
        """Normalize store/update field sets to the role-keyed form.

        A flat list of field names means "these fields, with their own rules,
        for every role".
        """
        sets: dict[str, dict[str, dict[str, str]]] = {}
        for action in ("store", "update"):
            config = data.get(action)
            if config is None:
                continue
            if isinstance(config, list):
                sets[action] = {"*": {name: "rules" for name in config}}
                continue
            if not isinstance(config, dict):
                raise ValueError(f"Resource '{slug}' validation.{action} must be a list or mapping")
            by_role: dict[str, dict[str, str]] = {}
            for role, role_fields in config.items():
                if isinstance(role_fields, list):
                    by_role[str(role)] = {name: "rules" for name in role_fields}
                else:
                    by_role[str(role)] = {
                        name: (presence or "rules") for name, presence in (role_fields or {}).items()
                    }
            sets[action] = by_role
        return sets

    def _relation_name(self, field_name: str) -> str:
        """Derive a relation name from a FK field: ``blogId`` -> ``blog``."""
        if field_name.endswith("Id") and len(field_name) > 2:
            return field_name[:-2]
        if field_name.endswith("_id") and len(field_name) > 3:
            return field_name[:-3]
        return field_name

    def _to_entity_name(self, slug: str) -> str:
        """Derive an entity name from a slug: ``blog_posts`` -> ``BlogPost``."""
        base = slug[:-1] if slug.endswith("s") else slug
        return "".join(part.capitalize() for part in base.replace("-", "_").split("_"))

    def _to_display_name(self, name: str) -> str:
        """Convert camelCase to Title Case."""
        result = []
        for i, char in enumerate(name):
            if char.isupper() and i > 0:
                result.append(" ")
            result.append(char)
        return "".join(result).title()

    def list_resources(self) -> list[str]:
        return list(self.resources.keys())
