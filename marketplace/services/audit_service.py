import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from fastapi import BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.models.audit import AuditLog

logger = logging.getLogger(__name__)

@dataclass
class AuditEntry:
    tenant_id: str
    user_id: Optional[str]
    action: str
    resource_type: str
    resource_id: Optional[str]
    changes: Dict[str, Any] = field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

class AuditLogService:
    """Best-effort audit sink.

    Each entry is written in its own session so a failed write can never touch
    the caller's transaction. Failures are retried with a linear backoff, then
    logged and dropped.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None
    ):
        self.session_factory = session_factory
        self.max_attempts = max(1, max_attempts or settings.AUDIT_LOG_MAX_ATTEMPTS)
        self.backoff_seconds = settings.AUDIT_LOG_RETRY_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds

    def emit(self, entry: AuditEntry) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            db = self.session_factory()
            try:
                db.add(AuditLog(
                    tenant_id=entry.tenant_id,
                    user_id=entry.user_id,
                    action=entry.action,
                    resource_type=entry.resource_type,
                    resource_id=entry.resource_id,
                    changes=entry.changes,
                    ip_address=entry.ip_address,
                    user_agent=(entry.user_agent or "")[:500] or None,
                ))
                db.commit()
                return True
            except SQLAlchemyError as e:
                db.rollback()
                logger.warning(
                    "Audit log write failed (attempt %s/%s) for %s %s: %s",
                    attempt, self.max_attempts, entry.action, entry.resource_id, e
                )
            finally:
                db.close()

            if attempt < self.max_attempts and self.backoff_seconds > 0:
                time.sleep(self.backoff_seconds * attempt)

        logger.error("Dropping audit log entry %s for %s %s", entry.action, entry.resource_type, entry.resource_id)
        return False

    @staticmethod
    def list_audit_logs(
        db: Session,
        tenant_id: str,
        action: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        page: int = 1,
        limit: int = 50
    ):
        """Get audit logs for a tenant, newest first"""
        query = db.query(AuditLog).filter(AuditLog.tenant_id == tenant_id)

        if action:
            query = query.filter(AuditLog.action == action)

        if resource_type:
            query = query.filter(AuditLog.resource_type == resource_type)

        if resource_id:
            query = query.filter(AuditLog.resource_id == resource_id)

        total = query.count()
        offset = (page - 1) * limit
        logs = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(offset).limit(limit).all()
        return logs, total

def emit_quietly(audit_sink: Optional[AuditLogService], entry: AuditEntry) -> None:
    """Hand an entry to the sink without letting its failure reach the caller"""
    if audit_sink is None:
        return
    try:
        audit_sink.emit(entry)
    except Exception:
        logger.exception("Audit sink raised while recording %s for %s", entry.action, entry.resource_id)

def record_audit(
    audit_sink: Optional[AuditLogService],
    entry: AuditEntry,
    background_tasks: Optional[BackgroundTasks] = None
) -> None:
    """Write an entry after the response when running inside a request, inline otherwise"""
    if audit_sink is None:
        return
    if background_tasks is not None:
        background_tasks.add_task(emit_quietly, audit_sink, entry)
    else:
        emit_quietly(audit_sink, entry)
