from dataclasses import dataclass
from typing import Optional

from marketplace.models.tenant import UserRole

@dataclass(frozen=True)
class RequestContext:
    """Who is calling and on behalf of which tenant.

    Built once per request and passed explicitly into the service layer.
    """
    tenant_id: str
    user_id: str
    role: UserRole
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
