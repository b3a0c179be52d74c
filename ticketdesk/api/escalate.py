from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from ticketdesk.api.deps import Actor, get_actor, get_state_machine
from ticketdesk.core.db import get_db
from ticketdesk.core.fsm import TicketStateMachine, get_ticket
from ticketdesk.core.permissions import Permission, require_permission
from ticketdesk.schemas.ticket import DeEscalationRequest, EscalationRequest, TicketResponse

router = APIRouter(prefix="/tickets", tags=["Escalation"])


@router.post("/{ticket_id}/escalate", response_model=TicketResponse, status_code=status.HTTP_200_OK)
def escalate_ticket(
    ticket_id: str,
    request: EscalationRequest,
    db: Session = Depends(get_db),
    fsm: TicketStateMachine = Depends(get_state_machine),
    actor: Actor = Depends(get_actor),
):
    """
    Flag a new or in-progress ticket as escalated without changing its status.
    An escalated ticket must be de-escalated before it can be escalated again.
    """
    require_permission(actor.role, Permission.ESCALATE_TICKETS)
    ticket = get_ticket(db, ticket_id)
    try:
        updated_ticket = fsm.escalate(ticket, request.escalated_to_id, request.reason, actor.user_id)
        db.commit()
        db.refresh(updated_ticket)
        return updated_ticket
    except Exception:
        db.rollback()
        raise


@router.post("/{ticket_id}/de-escalate", response_model=TicketResponse, status_code=status.HTTP_200_OK)
def de_escalate_ticket(
    ticket_id: str,
    request: DeEscalationRequest,
    db: Session = Depends(get_db),
    fsm: TicketStateMachine = Depends(get_state_machine),
    actor: Actor = Depends(get_actor),
):
    require_permission(actor.role, Permission.ESCALATE_TICKETS)
    ticket = get_ticket(db, ticket_id)
    try:
        updated_ticket = fsm.de_escalate(ticket, actor.user_id, request.reason)
        db.commit()
        db.refresh(updated_ticket)
        return updated_ticket
    except Exception:
        db.rollback()
        raise
