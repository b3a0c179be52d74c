from typing import Optional
from fastapi import Depends, Header, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session
from ticketdesk.core.db import get_db
from ticketdesk.core.errors import PermissionDenied
from ticketdesk.core.fsm import TicketStateMachine
from ticketdesk.core.notifications import LoggingNotifier, Notifier
from ticketdesk.core.permissions import Permission, Role, has_permission
from ticketdesk.models.ticket import Ticket

_notifier = LoggingNotifier()


class Actor(BaseModel):
    user_id: str
    role: Role


def get_actor(
    x_user_id: Optional[str] = Header(None, description="Acting user, as vouched for by the identity provider."),
    x_user_role: Optional[str] = Header(None, description="Role of the acting user."),
) -> Actor:
    """
    The identity provider has already verified the caller; we only read
    who it says they are.
    """
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id or X-User-Role header")
    try:
        role = Role(x_user_role)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Unknown role {x_user_role!r}")
    return Actor(user_id=x_user_id, role=role)


def get_notifier() -> Notifier:
    return _notifier


def get_state_machine(db: Session = Depends(get_db), notifier: Notifier = Depends(get_notifier)) -> TicketStateMachine:
    return TicketStateMachine(db, notifier=notifier)


def can_view_ticket(actor: Actor, ticket: Ticket) -> bool:
    if has_permission(actor.role, Permission.VIEW_ALL_TICKETS):
        return True
    return actor.user_id in (ticket.reported_by_id, ticket.assignee_id, ticket.escalated_to_id)


def ensure_can_view(actor: Actor, ticket: Ticket) -> None:
    if not can_view_ticket(actor, ticket):
        raise PermissionDenied(actor.role.value, Permission.VIEW_ALL_TICKETS.value)
