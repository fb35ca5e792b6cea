"""Atomic multi-operation batches."""

from resourcegate.nested.coordinator import (
    BatchState,
    NestedBatch,
    NestedCoordinator,
    NestedOperation,
)

__all__ = ["BatchState", "NestedBatch", "NestedCoordinator", "NestedOperation"]
