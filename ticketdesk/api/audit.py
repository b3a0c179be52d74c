from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from ticketdesk.api.deps import Actor, get_actor
from ticketdesk.core.db import get_db
from ticketdesk.core.permissions import Permission, require_permission
from ticketdesk.models.ticket import AuditLog
from ticketdesk.schemas.ticket import AuditLogResponse

router = APIRouter(prefix="/audit", tags=["Audit"])

@router.get("", response_model=List[AuditLogResponse])
def get_audit_logs(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    ticket_id: Optional[str] = None,
    actor_id: Optional[str] = Query(None, alias="actor"),
    action: Optional[str] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """
    Retrieve a list of immutable audit logs with optional filtering.
    """
    require_permission(actor.role, Permission.VIEW_AUDIT_LOG)
    query = db.query(AuditLog)

    if ticket_id is not None:
        query = query.filter(AuditLog.ticket_id == ticket_id)
    if actor_id is not None:
        query = query.filter(AuditLog.actor == actor_id)
    if action is not None:
        query = query.filter(AuditLog.action == action)

    return query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).offset(skip).limit(limit).all()
