from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from marketplace.database import get_db, SessionLocal
from marketplace.core.security import verify_token
from marketplace.core.context import RequestContext
from marketplace.models.tenant import User, UserRole
from marketplace.services.audit_service import AuditLogService

security = HTTPBearer()

def extract_client_info(request: Request):
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    elif request.client:
        ip_address = request.client.host
    else:
        ip_address = None
    return ip_address, request.headers.get("user-agent")

def get_request_context(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> RequestContext:
    payload = verify_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials"
        )

    user_id = payload.get("user_id")
    tenant_id = payload.get("tenant_id")
    user = db.query(User).filter(User.id == user_id, User.tenant_id == tenant_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is deactivated"
        )

    ip_address, user_agent = extract_client_info(request)
    return RequestContext(
        tenant_id=user.tenant_id,
        user_id=user.id,
        role=UserRole(user.role),
        ip_address=ip_address,
        user_agent=user_agent,
    )

def require_role(required_roles: list):
    """Dependency to require specific user roles"""
    def role_checker(context: RequestContext = Depends(get_request_context)):
        if context.role not in required_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {[role.value for role in required_roles]}"
            )
        return context
    return role_checker

require_customer = require_role([UserRole.CUSTOMER])
require_admin = require_role([UserRole.ADMIN])

def get_audit_sink() -> AuditLogService:
    return AuditLogService(SessionLocal)
