"""Error taxonomy for the access layer.

Every failure the core reports is a ``GatewayError`` carrying a machine code,
a human message and the HTTP status it renders as. The API layer converts
them to JSON in ``resourcegate.api.errors``.
"""

from typing import Any


class GatewayError(RuntimeError):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    code = "GATEWAY_ERROR"

    def __init__(self, message: str, errors: dict[str, list[str]] | None = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class UnknownResource(GatewayError):
    """The slug is not registered (or its type could not be loaded)."""

    status_code = 404
    code = "UNKNOWN_RESOURCE"

    def __init__(self, slug: str):
        super().__init__(f"The {slug} model does not exist")
        self.slug = slug


class NotFound(GatewayError):
    """No row matched under the caller's scope.

    Also used to hide the existence of other tenants' rows.
    """

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, message: str = "Resource not found."):
        super().__init__(message)


class InvalidQuery(GatewayError):
    """A query-string parameter names a field or relation that is not allowed."""

    status_code = 400
    code = "INVALID_QUERY"


class AuthenticationRequired(GatewayError):
    status_code = 401
    code = "AUTHENTICATION_REQUIRED"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class Unauthorized(GatewayError):
    """The permission evaluator denied the action."""

    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "This action is unauthorized."):
        super().__init__(message)


class ValidationFailed(GatewayError):
    """Field-level validation errors, keyed by (possibly qualified) field path."""

    status_code = 422
    code = "VALIDATION_FAILED"

    def __init__(self, errors: dict[str, list[str]], message: str = "Validation failed."):
        super().__init__(message, errors)


class StructuralError(GatewayError):
    """A nested batch was malformed or violated a batch-level guard."""

    status_code = 422
    code = "INVALID_STRUCTURE"

    def __init__(self, errors: dict[str, list[str]], message: str = "Invalid structure."):
        super().__init__(message, errors)


class TransactionFailure(GatewayError):
    """Storage failed mid-batch; every operation of the batch was rolled back."""

    status_code = 500
    code = "TRANSACTION_FAILED"

    def __init__(self, message: str = "Nested operations failed and were rolled back."):
        super().__init__(message)
