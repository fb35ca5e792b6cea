"""Request validation."""

from resourcegate.validation.field_constraints import FieldConstraintValidator
from resourcegate.validation.service import RequestValidator
from resourcegate.validation.types import ValidationError, ValidationOutcome, Validator

__all__ = [
    "FieldConstraintValidator",
    "RequestValidator",
    "ValidationError",
    "ValidationOutcome",
    "Validator",
]
