"""Core types for request validation."""

from dataclasses import dataclass, field
from typing import Any, Protocol

from resourcegate.metadata.loader import ResourceDescriptor


@dataclass(frozen=True)
class ValidationError:
    """A single field-level validation error.

    Attributes:
        message: Human-readable message
        code: Machine-readable error code (e.g., "REQUIRED")
        field: Field name this error relates to
    """

    message: str
    code: str
    field: str


@dataclass
class ValidationOutcome:
    """Result of validating one payload.

    Attributes:
        accepted: The fields that passed and may be written
        errors: Field name -> messages; empty when the payload is valid
    """

    accepted: dict[str, Any] = field(default_factory=dict)
    errors: dict[str, list[str]] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not self.errors

    def add(self, error: ValidationError) -> None:
        self.errors.setdefault(error.field, []).append(error.message)


class Validator(Protocol):
    """Maps raw input to accepted fields or a field-level error map."""

    def validate(
        self,
        descriptor: ResourceDescriptor,
        action: str,
        raw: dict[str, Any],
        role: str | None = None,
    ) -> ValidationOutcome: ...
