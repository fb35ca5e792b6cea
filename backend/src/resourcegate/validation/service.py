"""Request payload validation.

Decides which fields a payload may write (role-keyed field sets intersected
with the descriptor's fillable fields) and checks each against its metadata
constraints.
"""

import logging
from typing import Any

from resourcegate.metadata.loader import ResourceDescriptor
from resourcegate.validation.field_constraints import FieldConstraintValidator
from resourcegate.validation.types import ValidationOutcome

logger = logging.getLogger(__name__)

FALLBACK_ROLE = "*"

# Nested batch actions validate with the same rules as their HTTP counterparts
ACTION_ALIASES = {"create": "store"}


class RequestValidator:
    """The shipped Validator implementation."""

    def field_set(self, descriptor: ResourceDescriptor, action: str, role: str | None) -> dict[str, str]:
        """Fields writable for ``action`` by ``role``, mapped to their presence rule.

        Uses the role's own set when declared, then the ``*`` set, then every
        fillable field with its own rules.
        """
        by_role = descriptor.validation_sets.get(action)
        if by_role:
            if role is not None and role in by_role:
                return by_role[role]
            if FALLBACK_ROLE in by_role:
                return by_role[FALLBACK_ROLE]
            logger.debug("No %s field set for role %s on %s", action, role, descriptor.slug)
            return {}
        return {name: "rules" for name in descriptor.fillable}

    def validate(
        self,
        descriptor: ResourceDescriptor,
        action: str,
        raw: dict[str, Any],
        role: str | None = None,
    ) -> ValidationOutcome:
        """Validate ``raw`` for a store or update.

        On update, a field is only checked when present in the payload.
        Keys outside the writable set are dropped, not rejected.
        """
        action = ACTION_ALIASES.get(action, action)
        outcome = ValidationOutcome()

        for name, presence in self.field_set(descriptor, action, role).items():
            if name not in descriptor.fillable:
                continue
            field_def = descriptor.get_field(name)
            if field_def is None or field_def.primary_key:
                continue

            present = name in raw
            if action == "update" and not present:
                continue

            required = None
            if presence == "required":
                required = True
            elif presence == "optional":
                required = False

            errors = FieldConstraintValidator(field=field_def, required=required).validate(raw.get(name))
            if errors:
                for error in errors:
                    outcome.add(error)
            elif present:
                outcome.accepted[name] = raw[name]

        return outcome
