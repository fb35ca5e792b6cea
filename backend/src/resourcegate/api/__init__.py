"""HTTP layer."""

from resourcegate.api.app import create_app
from resourcegate.api.errors import register_exception_handlers
from resourcegate.api.identity import RequestIdentity

__all__ = ["RequestIdentity", "create_app", "register_exception_handlers"]
