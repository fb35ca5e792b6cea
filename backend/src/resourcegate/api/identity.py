"""Request identity: who is calling, and for which tenant.

The caller comes from the auth middleware (``request.state.caller``). The
tenant comes from the ``{tenant}`` route segment, matched against the tenant
root's identifier column. An unknown tenant and a tenant the caller holds no
assignment in look the same: 404.
"""

import logging
from typing import Any

from starlette.requests import Request

from resourcegate.auth.middleware import get_caller
from resourcegate.auth.types import Caller, RoleAssignment
from resourcegate.config import TenancyConfig
from resourcegate.core.context import AccessContext
from resourcegate.core.predicates import FieldEquals
from resourcegate.errors import NotFound
from resourcegate.persistence.adapter import DataStore
from resourcegate.tenancy.scope import TenantScopeResolver

logger = logging.getLogger(__name__)

LOCAL_USER = "local"


class RequestIdentity:
    """IdentityProvider over a single HTTP request."""

    def __init__(
        self,
        request: Request,
        store: DataStore,
        scopes: TenantScopeResolver,
        auth_disabled: bool = False,
    ):
        self.request = request
        self.store = store
        self.scopes = scopes
        self.auth_disabled = auth_disabled
        self._tenant_resolved = False
        self._tenant_id: Any = None

    @property
    def tenancy(self) -> TenancyConfig:
        return self.scopes.config

    def current_tenant(self) -> Any:
        """Primary key of the tenant root row named by the route, or None."""
        if not self._tenant_resolved:
            self._tenant_id = self._resolve_tenant(self.request.path_params.get("tenant"))
            self._tenant_resolved = True
        return self._tenant_id

    def current_caller(self) -> Caller | None:
        if self.auth_disabled:
            # Every action is allowed in the current tenant
            tenant_id = self.current_tenant()
            return Caller(
                user_id=LOCAL_USER,
                assignments=(RoleAssignment(LOCAL_USER, tenant_id, frozenset({"*"})),),
            )
        return get_caller(self.request)

    def context(self) -> AccessContext:
        tenant_id = self.current_tenant()
        return AccessContext(caller=self.current_caller(), tenant_id=tenant_id)

    def _resolve_tenant(self, segment: str | None) -> Any:
        if segment is None or not self.scopes.enabled:
            return None

        root = self.scopes.root_descriptor
        rows = self.store.find(root, FieldEquals(self.tenancy.identifier, segment))
        if not rows:
            raise NotFound(f"{root.display_name} not found")
        tenant_id = str(rows[0][root.primary_key])

        caller = None if self.auth_disabled else get_caller(self.request)
        if caller is not None and not caller.belongs_to(tenant_id):
            logger.info("User %s is not a member of tenant %s", caller.user_id, tenant_id)
            raise NotFound(f"{root.display_name} not found")
        return tenant_id
