from typing import List, Optional
from datetime import datetime
from fastapi import APIRouter, Depends, status, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session
from ticketdesk.api.deps import Actor, ensure_can_view, get_actor, get_state_machine
from ticketdesk.core.db import get_db, utcnow
from ticketdesk.core.fsm import TicketState, TicketStateMachine, current_state, get_ticket
from ticketdesk.core.permissions import Permission, has_permission, require_permission
from ticketdesk.models.ticket import Ticket, TicketComment
from ticketdesk.schemas.ticket import (
    CommentCreate,
    CommentResponse,
    PriorityEnum,
    TicketCreate,
    TicketResponse,
    TicketStats,
    TicketStatusEnum,
)

router = APIRouter(prefix="/tickets", tags=["Tickets"])


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
def create_ticket(
    ticket_in: TicketCreate,
    db: Session = Depends(get_db),
    fsm: TicketStateMachine = Depends(get_state_machine),
    actor: Actor = Depends(get_actor),
):
    """
    File a new ticket. The form data is validated against the subcategory's
    form schema; every offending field is reported at once.
    """
    require_permission(actor.role, Permission.CREATE_TICKETS)
    try:
        ticket = fsm.create(ticket_in, actor.user_id)
        db.commit()
        db.refresh(ticket)
        return ticket
    except Exception:
        db.rollback()
        raise


@router.get("", response_model=List[TicketResponse])
def get_tickets(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    status: Optional[TicketStatusEnum] = None,
    priority: Optional[PriorityEnum] = None,
    category_id: Optional[str] = None,
    assignee_id: Optional[str] = None,
    department: Optional[str] = None,
    escalated: Optional[bool] = None,
    search: Optional[str] = None,
    date_start: Optional[datetime] = None,
    date_end: Optional[datetime] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """
    Retrieve tickets with optional filtering. Roles without the
    view_all_tickets permission only see tickets they filed, own or were
    escalated to.
    """
    query = db.query(Ticket)

    if not has_permission(actor.role, Permission.VIEW_ALL_TICKETS):
        query = query.filter(or_(
            Ticket.reported_by_id == actor.user_id,
            Ticket.assignee_id == actor.user_id,
            Ticket.escalated_to_id == actor.user_id,
        ))
    if status is not None:
        query = query.filter(Ticket.status == status.value)
    if priority is not None:
        query = query.filter(Ticket.priority == priority.value)
    if category_id is not None:
        query = query.filter(Ticket.category_id == category_id)
    if assignee_id is not None:
        query = query.filter(Ticket.assignee_id == assignee_id)
    if department is not None:
        query = query.filter(Ticket.department == department)
    if escalated is not None:
        query = query.filter(Ticket.is_escalated.is_(escalated))
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Ticket.title.ilike(pattern),
            Ticket.ticket_number.ilike(pattern),
            Ticket.client_name.ilike(pattern),
        ))
    if date_start is not None:
        query = query.filter(Ticket.created_at >= date_start)
    if date_end is not None:
        query = query.filter(Ticket.created_at <= date_end)

    return query.order_by(Ticket.created_at.desc()).offset(skip).limit(limit).all()


@router.get("/stats", response_model=TicketStats)
def get_ticket_stats(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    require_permission(actor.role, Permission.VIEW_TICKET_REPORTS)
    tickets = db.query(Ticket).all()
    now = utcnow()
    counts = {state: 0 for state in TicketState}
    for ticket in tickets:
        counts[current_state(ticket)] += 1
    open_states = (TicketState.NEW.value, TicketState.IN_PROGRESS.value)
    return TicketStats(
        total=len(tickets),
        new=counts[TicketState.NEW],
        in_progress=counts[TicketState.IN_PROGRESS],
        resolved=counts[TicketState.RESOLVED],
        closed=counts[TicketState.CLOSED],
        escalated=sum(1 for ticket in tickets if ticket.is_escalated),
        overdue=sum(
            1 for ticket in tickets
            if ticket.status in open_states and ticket.sla_deadline is not None and ticket.sla_deadline < now
        ),
    )


@router.get("/{ticket_id}", response_model=TicketResponse)
def get_ticket_by_id(ticket_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    """
    Retrieve a specific ticket by ID, including its history.
    """
    ticket = get_ticket(db, ticket_id)
    ensure_can_view(actor, ticket)
    return ticket


@router.get("/{ticket_id}/comments", response_model=List[CommentResponse])
def get_comments(ticket_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    """Internal notes are only shown to roles that see every ticket."""
    ticket = get_ticket(db, ticket_id)
    ensure_can_view(actor, ticket)
    query = db.query(TicketComment).filter(TicketComment.ticket_id == ticket_id)
    if not has_permission(actor.role, Permission.VIEW_ALL_TICKETS):
        query = query.filter(TicketComment.is_internal.is_(False))
    return query.order_by(TicketComment.created_at.desc()).all()


@router.post("/{ticket_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
def add_comment(
    ticket_id: str,
    comment_in: CommentCreate,
    db: Session = Depends(get_db),
    fsm: TicketStateMachine = Depends(get_state_machine),
    actor: Actor = Depends(get_actor),
):
    require_permission(actor.role, Permission.COMMENT_ON_TICKETS)
    ticket = get_ticket(db, ticket_id)
    ensure_can_view(actor, ticket)
    try:
        comment = fsm.add_comment(ticket, actor.user_id, comment_in.content, comment_in.is_internal)
        db.commit()
        db.refresh(comment)
        return comment
    except Exception:
        db.rollback()
        raise
