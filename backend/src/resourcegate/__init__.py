"""resourcegate: metadata-driven multi-tenant resource access layer."""

__version__ = "0.1.0"
