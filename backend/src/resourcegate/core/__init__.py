"""Shared field-type definitions."""
