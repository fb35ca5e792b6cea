"""Type definitions for authentication and authorization."""

from dataclasses import dataclass, field


@dataclass
class TokenClaims:
    """Claims embedded in a JWT access token.

    Attributes:
        user_id: The authenticated user's ID (``sub``)
        tenant_id: Tenant the token was issued for, if any
        exp: Token expiration timestamp
        iat: Token issued-at timestamp
        type: Token type; only "access" tokens authenticate requests
    """

    user_id: str
    tenant_id: str | None = None
    exp: int = 0
    iat: int = 0
    type: str = "access"


@dataclass(frozen=True)
class RoleAssignment:
    """A user's role and permission set within one tenant.

    ``tenant_id`` is None for assignments that are not tied to a tenant
    (single-tenant deployments, platform operators).
    """

    user_id: str
    tenant_id: str | None
    permissions: frozenset[str] = frozenset()
    role: str | None = None


@dataclass(frozen=True)
class Caller:
    """The identity a request is evaluated for.

    Carries a snapshot of the user's role assignments taken when the
    request was authenticated, so evaluation never touches storage.
    """

    user_id: str
    assignments: tuple[RoleAssignment, ...] = field(default_factory=tuple)

    def assignments_for(self, tenant_id: str | None) -> tuple[RoleAssignment, ...]:
        """Assignments in ``tenant_id``; every assignment when it is None."""
        if tenant_id is None:
            return self.assignments
        return tuple(a for a in self.assignments if a.tenant_id == tenant_id)

    def role_for(self, tenant_id: str | None) -> str | None:
        for assignment in self.assignments_for(tenant_id):
            if assignment.role:
                return assignment.role
        return None

    def belongs_to(self, tenant_id: str) -> bool:
        return any(a.tenant_id == tenant_id for a in self.assignments)
