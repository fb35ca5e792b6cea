"""Field redaction."""

from resourcegate.redaction.cache import (
    ANONYMOUS,
    BASELINE_HIDDEN,
    HiddenFieldsCache,
    RedactionKey,
    redact,
)

__all__ = ["ANONYMOUS", "BASELINE_HIDDEN", "HiddenFieldsCache", "RedactionKey", "redact"]
