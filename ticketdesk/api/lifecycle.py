from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from ticketdesk.api.deps import Actor, ensure_can_view, get_actor, get_state_machine
from ticketdesk.core.db import get_db
from ticketdesk.core.fsm import TicketStateMachine, get_ticket
from ticketdesk.core.permissions import Permission, require_permission, transition_guard
from ticketdesk.schemas.ticket import (
    AssignmentRequest,
    FollowUpRequest,
    PriorityChangeRequest,
    StatusTransitionRequest,
    TicketResponse,
)

router = APIRouter(prefix="/tickets", tags=["Lifecycle"])


@router.post("/{ticket_id}/status", response_model=TicketResponse, status_code=status.HTTP_200_OK)
def change_status(
    ticket_id: str,
    request: StatusTransitionRequest,
    db: Session = Depends(get_db),
    fsm: TicketStateMachine = Depends(get_state_machine),
    actor: Actor = Depends(get_actor),
):
    """
    Move a ticket along its lifecycle: start, reassign, resolve, close or reopen.
    Transitions outside the table are rejected with 409.
    """
    ticket = get_ticket(db, ticket_id)
    ensure_can_view(actor, ticket)

    try:
        updated_ticket = fsm.transition(
            ticket=ticket,
            new_state=request.status,
            actor=actor.user_id,
            reason=request.reason,
            assignee_id=request.assignee_id,
            authorize=transition_guard(actor.role),
        )
        db.commit()
        db.refresh(updated_ticket)
        return updated_ticket
    except Exception:
        db.rollback()
        raise


@router.post("/{ticket_id}/assign", response_model=TicketResponse, status_code=status.HTTP_200_OK)
def assign_ticket(
    ticket_id: str,
    request: AssignmentRequest,
    db: Session = Depends(get_db),
    fsm: TicketStateMachine = Depends(get_state_machine),
    actor: Actor = Depends(get_actor),
):
    require_permission(actor.role, Permission.ASSIGN_TICKETS)
    ticket = get_ticket(db, ticket_id)
    try:
        updated_ticket = fsm.assign(ticket, request.assignee_id, actor.user_id, request.reason)
        db.commit()
        db.refresh(updated_ticket)
        return updated_ticket
    except Exception:
        db.rollback()
        raise


@router.post("/{ticket_id}/priority", response_model=TicketResponse, status_code=status.HTTP_200_OK)
def change_priority(
    ticket_id: str,
    request: PriorityChangeRequest,
    db: Session = Depends(get_db),
    fsm: TicketStateMachine = Depends(get_state_machine),
    actor: Actor = Depends(get_actor),
):
    """
    Change a ticket's priority. Open tickets get a fresh SLA deadline counted from now.
    """
    require_permission(actor.role, Permission.CHANGE_PRIORITY)
    ticket = get_ticket(db, ticket_id)
    try:
        updated_ticket = fsm.change_priority(ticket, request.priority, actor.user_id, request.reason)
        db.commit()
        db.refresh(updated_ticket)
        return updated_ticket
    except Exception:
        db.rollback()
        raise


@router.post("/{ticket_id}/follow-up", response_model=TicketResponse, status_code=status.HTTP_200_OK)
def schedule_follow_up(
    ticket_id: str,
    request: FollowUpRequest,
    db: Session = Depends(get_db),
    fsm: TicketStateMachine = Depends(get_state_machine),
    actor: Actor = Depends(get_actor),
):
    require_permission(actor.role, Permission.SCHEDULE_FOLLOW_UP)
    ticket = get_ticket(db, ticket_id)
    ensure_can_view(actor, ticket)
    try:
        updated_ticket = fsm.schedule_follow_up(ticket, request.follow_up_required, request.follow_up_date, actor.user_id)
        db.commit()
        db.refresh(updated_ticket)
        return updated_ticket
    except Exception:
        db.rollback()
        raise
