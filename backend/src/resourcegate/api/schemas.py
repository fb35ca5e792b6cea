"""Response bodies."""

from typing import Any

from pydantic import BaseModel


class RecordResponse(BaseModel):
    """A single (redacted) record."""
    data: dict[str, Any]


class NestedResult(BaseModel):
    model: str
    action: str
    id: Any
    data: dict[str, Any]


class NestedResponse(BaseModel):
    """Results of a committed batch, in input order."""
    results: list[NestedResult]


class HealthResponse(BaseModel):
    status: str
