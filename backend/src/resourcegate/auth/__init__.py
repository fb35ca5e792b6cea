"""Authentication and authorization for resourcegate."""

from resourcegate.auth.assignments import RoleAssignmentStore
from resourcegate.auth.jwt_service import JWTError, JWTService
from resourcegate.auth.middleware import AuthMiddleware, get_caller
from resourcegate.auth.permissions import (
    ALL_ACTIONS,
    PermissionEvaluator,
    ResourcePolicy,
    permission_matches,
)
from resourcegate.auth.policies import PolicyRegistry, policy
from resourcegate.auth.types import Caller, RoleAssignment, TokenClaims

__all__ = [
    "ALL_ACTIONS",
    "AuthMiddleware",
    "Caller",
    "JWTError",
    "JWTService",
    "PermissionEvaluator",
    "PolicyRegistry",
    "ResourcePolicy",
    "RoleAssignment",
    "RoleAssignmentStore",
    "TokenClaims",
    "get_caller",
    "permission_matches",
    "policy",
]
