from pydantic import BaseModel, ConfigDict
from typing import Any, Dict, Optional, List
from datetime import datetime

class AuditLogResponse(BaseModel):
    id: int
    tenant_id: str
    user_id: Optional[str] = None
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    changes: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class AuditLogPage(BaseModel):
    logs: List[AuditLogResponse]
    total: int
    page: int
    limit: int
