"""Field type registry with storage defaults."""

from dataclasses import dataclass


@dataclass(frozen=True)
class FieldType:
    name: str
    storage_type: str
    numeric: bool = False
    textual: bool = False


# Built-in field types
FIELD_TYPES: dict[str, FieldType] = {
    "id": FieldType(name="id", storage_type="TEXT"),  # uuid4 hex unless supplied
    "uuid": FieldType(name="uuid", storage_type="TEXT"),
    "string": FieldType(name="string", storage_type="TEXT", textual=True),
    "name": FieldType(name="name", storage_type="TEXT", textual=True),
    "text": FieldType(name="text", storage_type="TEXT", textual=True),
    "description": FieldType(name="description", storage_type="TEXT", textual=True),
    "email": FieldType(name="email", storage_type="TEXT", textual=True),
    "phone": FieldType(name="phone", storage_type="TEXT"),
    "url": FieldType(name="url", storage_type="TEXT"),
    "picklist": FieldType(name="picklist", storage_type="TEXT"),
    "date": FieldType(name="date", storage_type="TEXT"),  # ISO format
    "datetime": FieldType(name="datetime", storage_type="TEXT"),  # ISO format
    "number": FieldType(name="number", storage_type="REAL", numeric=True),
    "integer": FieldType(name="integer", storage_type="INTEGER", numeric=True),
    "currency": FieldType(name="currency", storage_type="REAL", numeric=True),
    "percent": FieldType(name="percent", storage_type="REAL", numeric=True),
    "boolean": FieldType(name="boolean", storage_type="INTEGER"),  # 0/1
    "relation": FieldType(name="relation", storage_type="TEXT"),  # foreign key
    "json": FieldType(name="json", storage_type="TEXT"),
}


def get_field_type(type_name: str) -> FieldType:
    """Get a field type by name, defaulting to string for unknown types."""
    return FIELD_TYPES.get(type_name, FIELD_TYPES["string"])


def get_storage_type(type_name: str) -> str:
    """Get SQLite storage type for a field type."""
    return get_field_type(type_name).storage_type
