"""Persistence layer."""

from resourcegate.persistence.adapter import ConstraintViolation, DataStore, StoreError
from resourcegate.persistence.config import create_store
from resourcegate.persistence.sqlite import SQLiteAdapter

__all__ = ["ConstraintViolation", "DataStore", "SQLiteAdapter", "StoreError", "create_store"]
