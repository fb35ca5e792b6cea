"""Per-request access context."""

from dataclasses import dataclass
from typing import Any

from resourcegate.auth.types import Caller


@dataclass(frozen=True)
class AccessContext:
    """Who is asking, and in which tenant.

    ``tenant_id`` is the primary key of the tenant root row, already resolved
    from the route; None outside tenant routes.
    """

    caller: Caller | None = None
    tenant_id: Any = None

    @property
    def role(self) -> str | None:
        if self.caller is None:
            return None
        return self.caller.role_for(self.tenant_id)
