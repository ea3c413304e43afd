from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from marketplace.database import get_db
from marketplace.core.context import RequestContext
from marketplace.core.dependencies import require_admin
from marketplace.schemas.audit import AuditLogPage
from marketplace.services.audit_service import AuditLogService

router = APIRouter()

@router.get("/audit-logs", response_model=AuditLogPage)
def get_audit_logs(
    action: Optional[str] = Query(None),
    resource_type: Optional[str] = Query(None, alias="resourceType"),
    resource_id: Optional[str] = Query(None, alias="resourceId"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    context: RequestContext = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Get the tenant's audit trail (admin only)"""
    logs, total = AuditLogService.list_audit_logs(
        db, context.tenant_id, action, resource_type, resource_id, page, limit
    )
    return {"logs": logs, "total": total, "page": page, "limit": limit}
