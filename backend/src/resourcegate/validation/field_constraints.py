"""Field-level constraint checks.

Generated from field metadata:
- required: Field must have a non-empty value
- min/max: Numeric bounds
- minLength/maxLength: String length bounds
- pattern: Regex pattern matching
- Type-specific formats: email, phone, url, uuid, date, datetime, boolean
- picklist: Value must be one of the declared options
"""

import logging
import re
from dataclasses import dataclass
from typing import Any

from resourcegate.core.types import get_field_type
from resourcegate.metadata.loader import FieldDefinition, ValidationRules
from resourcegate.validation.types import ValidationError

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(
    r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
)

PHONE_PATTERN = re.compile(
    r"^[\+]?[(]?[0-9]{1,3}[)]?[-\s\.]?[(]?[0-9]{1,4}[)]?[-\s\.]?[0-9]{1,4}[-\s\.]?[0-9]{1,9}$"
)

URL_PATTERN = re.compile(
    r"^https?://[^\s/$.?#].[^\s]*$",
    re.IGNORECASE
)

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-?[0-9a-f]{4}-?[0-9a-f]{4}-?[0-9a-f]{4}-?[0-9a-f]{12}$",
    re.IGNORECASE
)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DATETIME_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}")


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and value.strip() == "":
        return True
    if isinstance(value, (list, dict)) and len(value) == 0:
        return True
    return False


@dataclass
class FieldConstraintValidator:
    """Validates a single field value against its metadata constraints.

    ``required`` overrides the field's own required flag when set (role-keyed
    field sets can make a field required or optional per role).
    """

    field: FieldDefinition
    required: bool | None = None

    def validate(self, value: Any) -> list[ValidationError]:
        errors: list[ValidationError] = []
        rules = self.field.validation
        required = rules.required if self.required is None else self.required

        if required and is_empty(value):
            errors.append(ValidationError(
                message=f"{self.field.display_name} is required",
                code="REQUIRED",
                field=self.field.name,
            ))
            return errors

        if is_empty(value):
            return errors

        type_error = self._validate_type_format(value)
        if type_error:
            errors.append(ValidationError(
                message=type_error,
                code=f"INVALID_{self.field.type.upper()}",
                field=self.field.name,
            ))
            return errors

        if get_field_type(self.field.type).numeric:
            errors.extend(self._validate_numeric_bounds(value, rules))

        if get_field_type(self.field.type).textual:
            errors.extend(self._validate_string_length(value, rules))

        if rules.pattern:
            pattern_error = self._validate_pattern(value, rules.pattern)
            if pattern_error:
                errors.append(pattern_error)

        if self.field.type == "picklist" and self.field.options and value not in self.field.options:
            errors.append(ValidationError(
                message=f"'{value}' is not a valid option for {self.field.display_name}",
                code="INVALID_OPTION",
                field=self.field.name,
            ))

        return errors

    def _validate_type_format(self, value: Any) -> str | None:
        """Returns an error message or None."""
        field_type = self.field.type
        name = self.field.display_name

        if field_type == "email":
            if not isinstance(value, str) or not EMAIL_PATTERN.match(value):
                return f"{name} must be a valid email address"

        elif field_type == "phone":
            if not isinstance(value, str) or not PHONE_PATTERN.match(value):
                return f"{name} must be a valid phone number"

        elif field_type == "url":
            if not isinstance(value, str) or not URL_PATTERN.match(value):
                return f"{name} must be a valid URL"

        elif field_type == "uuid":
            if not isinstance(value, str) or not UUID_PATTERN.match(value):
                return f"{name} must be a valid UUID"

        elif get_field_type(field_type).numeric:
            if isinstance(value, bool):
                return f"{name} must be a number"
            if field_type == "integer":
                if isinstance(value, float) and not value.is_integer():
                    return f"{name} must be an integer"
                if isinstance(value, str):
                    try:
                        int(value)
                    except ValueError:
                        return f"{name} must be an integer"
            elif isinstance(value, str):
                try:
                    float(value)
                except ValueError:
                    return f"{name} must be a number"
            elif not isinstance(value, (int, float)):
                return f"{name} must be a number"

        elif field_type == "boolean":
            if not isinstance(value, bool) and value not in (0, 1, "true", "false", "0", "1"):
                return f"{name} must be a boolean"

        elif field_type == "date":
            if not isinstance(value, str) or not DATE_PATTERN.match(value):
                return f"{name} must be a valid date (YYYY-MM-DD)"

        elif field_type == "datetime":
            if not isinstance(value, str) or not DATETIME_PATTERN.match(value):
                return f"{name} must be a valid datetime"

        elif get_field_type(field_type).textual:
            if not isinstance(value, str):
                return f"{name} must be a string"

        return None

    def _validate_numeric_bounds(self, value: Any, rules: ValidationRules) -> list[ValidationError]:
        errors = []
        num_value = float(value) if isinstance(value, str) else value

        if rules.min is not None and num_value < rules.min:
            errors.append(ValidationError(
                message=f"{self.field.display_name} must be at least {rules.min}",
                code="MIN_VALUE",
                field=self.field.name,
            ))

        if rules.max is not None and num_value > rules.max:
            errors.append(ValidationError(
                message=f"{self.field.display_name} must be at most {rules.max}",
                code="MAX_VALUE",
                field=self.field.name,
            ))

        return errors

    def _validate_string_length(self, value: Any, rules: ValidationRules) -> list[ValidationError]:
        errors = []
        length = len(value)

        if rules.min_length is not None and length < rules.min_length:
            errors.append(ValidationError(
                message=f"{self.field.display_name} must be at least {rules.min_length} characters",
                code="MIN_LENGTH",
                field=self.field.name,
            ))

        if rules.max_length is not None and length > rules.max_length:
            errors.append(ValidationError(
                message=f"{self.field.display_name} must be at most {rules.max_length} characters",
                code="MAX_LENGTH",
                field=self.field.name,
            ))

        return errors

    def _validate_pattern(self, value: Any, pattern: str) -> ValidationError | None:
        if not isinstance(value, str):
            return None
        try:
            matched = re.match(pattern, value)
        except re.error:
            logger.warning("Invalid pattern on field %s: %r", self.field.name, pattern)
            return None
        if not matched:
            return ValidationError(
                message=f"{self.field.display_name} format is invalid",
                code="PATTERN_MISMATCH",
                field=self.field.name,
            )
        return None
