import logging
from typing import Any, Callable, Dict, Optional
from datetime import datetime
from sqlalchemy import func, update
from sqlalchemy.orm import Session
from ticketdesk.core.classification import resolve_classification
from ticketdesk.core.config import settings
from ticketdesk.core.db import utcnow
from ticketdesk.core.errors import (
    DataIntegrityError,
    InvalidTransition,
    NotFound,
    PreconditionFailed,
    StaleWrite,
    ValidationFailed,
)
from ticketdesk.core.notifications import LoggingNotifier, Notifier, TicketEvent
from ticketdesk.core.schema_resolver import validate_submission
from ticketdesk.core.sla import compute_sla_deadline
from ticketdesk.models.ticket import AuditLog, Ticket, TicketComment
from ticketdesk.schemas.ticket import PriorityEnum, TicketCreate, TicketStatusEnum

logger = logging.getLogger(__name__)

TicketState = TicketStatusEnum

VALID_TRANSITIONS = {
    TicketState.NEW: [TicketState.IN_PROGRESS],
    TicketState.IN_PROGRESS: [TicketState.RESOLVED, TicketState.IN_PROGRESS],
    TicketState.RESOLVED: [TicketState.CLOSED, TicketState.IN_PROGRESS],
    TicketState.CLOSED: [TicketState.IN_PROGRESS],
}

TRANSITION_ACTIONS = {
    (TicketState.NEW, TicketState.IN_PROGRESS): "start_progress",
    (TicketState.IN_PROGRESS, TicketState.IN_PROGRESS): "reassign",
    (TicketState.IN_PROGRESS, TicketState.RESOLVED): "resolve",
    (TicketState.RESOLVED, TicketState.CLOSED): "close",
    (TicketState.RESOLVED, TicketState.IN_PROGRESS): "reopen",
    (TicketState.CLOSED, TicketState.IN_PROGRESS): "reopen",
}

ESCALATABLE_STATES = (TicketState.NEW, TicketState.IN_PROGRESS)
# priority changes in these states move the SLA deadline
SLA_TRACKED_STATES = (TicketState.NEW, TicketState.IN_PROGRESS)


def get_ticket(db: Session, ticket_id: str) -> Ticket:
    ticket = db.get(Ticket, ticket_id)
    if ticket is None:
        raise NotFound("Ticket", ticket_id)
    return ticket


def current_state(ticket: Ticket) -> TicketState:
    try:
        return TicketState(ticket.status)
    except ValueError:
        raise DataIntegrityError(
            f"Ticket {ticket.id} has unknown status {ticket.status!r}",
            ticket_id=ticket.id,
            status=ticket.status,
        )


class TicketStateMachine:
    """
    Applies ticket lifecycle changes.

    The machine is role-agnostic: callers check permissions before calling in,
    or pass an ``authorize`` callback to ``transition`` that is re-run on each
    attempt. Every write is a compare-and-set against the values the decision
    was based on and the row version it read. Nothing here commits; the
    caller owns the transaction.
    """

    def __init__(
        self,
        db: Session,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = utcnow,
        sla_policy: Optional[Dict[str, int]] = None,
    ):
        self.db = db
        self.notifier = notifier or LoggingNotifier()
        self.clock = clock
        self.sla_policy = sla_policy

    def validate_transition(self, current: TicketState, new_state: TicketState):
        if new_state not in VALID_TRANSITIONS.get(current, []):
            raise InvalidTransition(current.value, new_state.value)

    def _next_ticket_number(self, now: datetime) -> str:
        count = self.db.query(func.count(Ticket.id)).scalar() or 0
        return f"{settings.TICKET_NUMBER_PREFIX}-{now:%Y%m}-{count + 1:05d}"

    @staticmethod
    def _log_entry(action: str, actor: str, previous_state: Optional[str], new_state: str, reason: Optional[str], timestamp: datetime) -> Dict[str, Any]:
        return {
            "action": action,
            "actor": actor,
            "previous_state": previous_state,
            "new_state": new_state,
            "reason": reason,
            "timestamp": timestamp.isoformat(),
        }

    def _emit(self, kind: str, ticket: Ticket, actor: str, recipient: Optional[str], summary: str) -> None:
        self.notifier.notify(TicketEvent(
            kind=kind,
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            actor_id=actor,
            recipient_id=recipient,
            summary=summary,
            occurred_at=self.clock(),
        ))

    def create(self, data: TicketCreate, actor: str) -> Ticket:
        """
        File a new ticket in the ``new`` state.
        The form data is validated against the subcategory's schema and stored verbatim.
        """
        category, subcategory = resolve_classification(self.db, data.category_id, data.subcategory_id)
        result = validate_submission(self.db, subcategory.id, data.form_data)
        if not result.ok:
            raise ValidationFailed(result.errors)

        now = self.clock()
        ticket = Ticket(
            ticket_number=self._next_ticket_number(now),
            category_id=category.id,
            subcategory_id=subcategory.id,
            title=data.title,
            description=data.description,
            client_name=data.client_name,
            client_email=data.client_email,
            client_phone=data.client_phone,
            client_status=data.client_status,
            client_mood=data.client_mood,
            form_data=dict(data.form_data),
            status=TicketState.NEW.value,
            priority=data.priority.value,
            department=data.department or subcategory.default_department or category.default_department,
            reported_by_id=actor,
            sla_deadline=compute_sla_deadline(data.priority, now, self.sla_policy),
            is_escalated=False,
            follow_up_required=data.follow_up_required,
            follow_up_date=data.follow_up_date,
            created_at=now,
            updated_at=now,
            version=1,
            history_log=[self._log_entry("CREATE", actor, None, TicketState.NEW.value, "Ticket filed", now)],
        )
        self.db.add(ticket)
        self.db.flush()

        self.db.add(AuditLog(
            ticket_id=ticket.id,
            actor=actor,
            action="CREATE",
            previous_state=None,
            new_state=TicketState.NEW.value,
            reason="Ticket filed",
            metadata_info={"category_id": category.id, "subcategory_id": subcategory.id, "priority": ticket.priority},
            timestamp=now,
        ))
        self.db.flush()
        logger.info("Created ticket %s in %s/%s", ticket.ticket_number, category.name, subcategory.name)
        return ticket

    def _write(
        self,
        ticket: Ticket,
        expected: Dict[str, Any],
        values: Dict[str, Any],
        action: str,
        actor: str,
        reason: Optional[str] = None,
        metadata_info: Optional[Dict[str, Any]] = None,
    ) -> Ticket:
        """
        Compare-and-set ``values`` onto the ticket row, guarded by ``expected``,
        and record the change in the history log and the audit table.
        """
        now = values.setdefault("updated_at", self.clock())
        expected = dict(expected, version=ticket.version)
        values["version"] = Ticket.version + 1
        previous_state = ticket.status
        new_state = values.get("status", previous_state)
        entry = self._log_entry(action, actor, previous_state, new_state, reason, now)
        values["history_log"] = list(ticket.history_log or []) + [entry]

        guards = [getattr(Ticket, column) == value for column, value in expected.items()]
        result = self.db.execute(
            update(Ticket)
            .where(Ticket.id == ticket.id, *guards)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StaleWrite(ticket.id, expected)

        self.db.add(AuditLog(
            ticket_id=ticket.id,
            actor=actor,
            action=action,
            previous_state=previous_state,
            new_state=new_state,
            reason=reason,
            metadata_info=metadata_info or {},
            timestamp=now,
        ))
        self.db.flush()
        self.db.refresh(ticket)
        return ticket

    def _with_retry(self, ticket: Ticket, operation: Callable[[], Ticket], retry_on_stale: bool) -> Ticket:
        """Run ``operation`` once more against a fresh read if it lost a compare-and-set race."""
        try:
            return operation()
        except StaleWrite:
            if not retry_on_stale:
                raise
            logger.info("Ticket %s changed underneath us; re-reading and retrying once", ticket.id)
            self.db.refresh(ticket)
            return operation()

    def transition(
        self,
        ticket: Ticket,
        new_state,
        actor: str,
        reason: Optional[str] = None,
        assignee_id: Optional[str] = None,
        metadata_info: Optional[Dict[str, Any]] = None,
        retry_on_stale: bool = True,
        authorize: Optional[Callable[[TicketState, TicketState], None]] = None,
    ) -> Ticket:
        """
        Move the ticket to ``new_state`` and apply the derived timestamps.
        Raises InvalidTransition when the move is not in the transition table.
        ``authorize(current, target)`` runs against the status read on every
        attempt and may raise to veto the move.
        """
        target = TicketState(new_state)
        return self._with_retry(
            ticket,
            lambda: self._transition(ticket, target, actor, reason, assignee_id, metadata_info, authorize),
            retry_on_stale,
        )

    def _transition(self, ticket, target, actor, reason, assignee_id, metadata_info, authorize=None) -> Ticket:
        current = current_state(ticket)
        self.validate_transition(current, target)
        if authorize is not None:
            authorize(current, target)

        now = self.clock()
        values: Dict[str, Any] = {"status": target.value, "updated_at": now}
        if current == TicketState.NEW and ticket.first_response_at is None:
            values["first_response_at"] = now
        if target == TicketState.RESOLVED:
            values["resolved_at"] = now
        if target == TicketState.CLOSED:
            if ticket.resolved_at is None:
                raise PreconditionFailed("Cannot close a ticket that was never resolved", ticket_id=ticket.id)
            values["closed_at"] = now
        if target == TicketState.IN_PROGRESS and current in (TicketState.RESOLVED, TicketState.CLOSED):
            values["resolved_at"] = None
            values["closed_at"] = None
        if current == target == TicketState.IN_PROGRESS and not assignee_id:
            raise PreconditionFailed("Reassigning an in-progress ticket needs an assignee", ticket_id=ticket.id)
        if assignee_id:
            values["assignee_id"] = assignee_id

        action = TRANSITION_ACTIONS[(current, target)]
        self._write(ticket, {"status": current.value}, values, action, actor, reason, metadata_info)
        logger.info("Ticket %s: %s -> %s by %s", ticket.ticket_number, current.value, target.value, actor)

        if target == TicketState.RESOLVED:
            self._emit("resolution", ticket, actor, ticket.reported_by_id, f"Ticket {ticket.ticket_number} was resolved")
        elif assignee_id:
            self._emit("assignment", ticket, actor, assignee_id, f"Ticket {ticket.ticket_number} was assigned to you")
        return ticket

    def assign(self, ticket: Ticket, assignee_id: str, actor: str, reason: Optional[str] = None, retry_on_stale: bool = True) -> Ticket:
        """
        Hand the ticket to ``assignee_id``. New tickets keep their status;
        in-progress tickets go through the reassign self-transition.
        """
        def operation():
            current = current_state(ticket)
            if current == TicketState.IN_PROGRESS:
                return self._transition(ticket, current, actor, reason, assignee_id, None)
            if current != TicketState.NEW:
                raise PreconditionFailed(f"Cannot assign a {current.value} ticket", ticket_id=ticket.id)
            self._write(
                ticket, {"status": current.value}, {"assignee_id": assignee_id}, "assign", actor,
                reason or f"Assigned to {assignee_id}",
            )
            self._emit("assignment", ticket, actor, assignee_id, f"Ticket {ticket.ticket_number} was assigned to you")
            return ticket
        return self._with_retry(ticket, operation, retry_on_stale)

    def escalate(self, ticket: Ticket, escalated_to_id: str, reason: str, actor: str, retry_on_stale: bool = True) -> Ticket:
        def operation():
            current = current_state(ticket)
            if current not in ESCALATABLE_STATES:
                raise PreconditionFailed(f"Cannot escalate a {current.value} ticket", ticket_id=ticket.id)
            if ticket.is_escalated:
                raise PreconditionFailed("Ticket is already escalated; de-escalate it first", ticket_id=ticket.id)
            now = self.clock()
            self._write(
                ticket,
                {"status": current.value, "is_escalated": False},
                {
                    "is_escalated": True,
                    "escalated_at": now,
                    "escalated_to_id": escalated_to_id,
                    "escalation_reason": reason,
                    "updated_at": now,
                },
                "escalate", actor, reason, {"escalated_to_id": escalated_to_id},
            )
            self._emit("escalation", ticket, actor, escalated_to_id, f"Ticket {ticket.ticket_number} was escalated: {reason}")
            return ticket
        return self._with_retry(ticket, operation, retry_on_stale)

    def de_escalate(self, ticket: Ticket, actor: str, reason: Optional[str] = None, retry_on_stale: bool = True) -> Ticket:
        def operation():
            current = current_state(ticket)
            if not ticket.is_escalated:
                raise PreconditionFailed("Ticket is not escalated", ticket_id=ticket.id)
            self._write(
                ticket,
                {"status": current.value, "is_escalated": True},
                {"is_escalated": False, "escalated_at": None, "escalated_to_id": None, "escalation_reason": None},
                "de_escalate", actor, reason,
            )
            return ticket
        return self._with_retry(ticket, operation, retry_on_stale)

    def change_priority(self, ticket: Ticket, priority, actor: str, reason: Optional[str] = None, retry_on_stale: bool = True) -> Ticket:
        """
        Change the priority. While the ticket is new or in progress the SLA
        deadline is recomputed from the new priority, counted from now.
        """
        new_priority = PriorityEnum(priority)

        def operation():
            current = current_state(ticket)
            if current == TicketState.CLOSED:
                raise PreconditionFailed("Cannot change the priority of a closed ticket", ticket_id=ticket.id)
            now = self.clock()
            values: Dict[str, Any] = {"priority": new_priority.value, "updated_at": now}
            if current in SLA_TRACKED_STATES:
                values["sla_deadline"] = compute_sla_deadline(new_priority, now, self.sla_policy)
            self._write(
                ticket, {"status": current.value}, values, "change_priority", actor, reason,
                {"previous_priority": ticket.priority, "new_priority": new_priority.value},
            )
            return ticket
        return self._with_retry(ticket, operation, retry_on_stale)

    def add_comment(self, ticket: Ticket, actor: str, content: str, is_internal: bool = False, retry_on_stale: bool = True) -> TicketComment:
        """Record a comment; the first one on a ticket counts as its first response."""
        comment = TicketComment(ticket_id=ticket.id, user_id=actor, content=content, is_internal=is_internal)

        def operation():
            current = current_state(ticket)
            values: Dict[str, Any] = {}
            if ticket.first_response_at is None:
                values["first_response_at"] = self.clock()
            self._write(ticket, {"status": current.value}, values, "comment", actor,
                        "Internal note added" if is_internal else "Comment added")
            return ticket

        self._with_retry(ticket, operation, retry_on_stale)
        self.db.add(comment)
        self.db.flush()
        return comment

    def schedule_follow_up(self, ticket: Ticket, required: bool, follow_up_date: Optional[datetime], actor: str, retry_on_stale: bool = True) -> Ticket:
        def operation():
            current = current_state(ticket)
            if current == TicketState.CLOSED:
                raise PreconditionFailed("Cannot schedule a follow-up on a closed ticket", ticket_id=ticket.id)
            self._write(
                ticket, {"status": current.value},
                {"follow_up_required": required, "follow_up_date": follow_up_date if required else None},
                "follow_up", actor,
                f"Follow-up on {follow_up_date.isoformat()}" if required and follow_up_date else None,
            )
            return ticket
        return self._with_retry(ticket, operation, retry_on_stale)
