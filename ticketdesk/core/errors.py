"""
Domain errors raised by the classification and lifecycle engines.

Each error carries the HTTP status it maps to and a structured ``detail``
payload; ``ticketdesk.main`` turns them into JSON responses.
"""
from typing import Any, Dict, List, Optional


class TicketDeskError(Exception):
    status_code = 500
    error = "Internal error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    @property
    def detail(self) -> Dict[str, Any]:
        return {"error": self.error, "reason": self.message, **self.context}


class NotFound(TicketDeskError):
    status_code = 404
    error = "Not found"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found", entity=entity, id=entity_id)


class ValidationFailed(TicketDeskError):
    """Carries every offending field, never just the first one."""

    status_code = 422
    error = "Validation failed"

    def __init__(self, errors: Dict[str, List[str]], message: Optional[str] = None):
        super().__init__(message or f"{len(errors)} field(s) failed validation", errors=errors)
        self.errors = errors


class InvalidTransition(TicketDeskError):
    status_code = 409
    error = "Invalid state transition"

    def __init__(self, current_state: str, attempted_state: str):
        super().__init__(
            f"Transition from {current_state} to {attempted_state} is not permitted.",
            current_state=current_state,
            attempted_state=attempted_state,
        )
        self.current_state = current_state
        self.attempted_state = attempted_state


class PreconditionFailed(TicketDeskError):
    status_code = 409
    error = "Precondition failed"


class PermissionDenied(TicketDeskError):
    status_code = 403
    error = "Permission denied"

    def __init__(self, role: str, permission: str):
        super().__init__(f"Role {role} lacks the {permission} permission", role=role, permission=permission)
        self.role = role
        self.permission = permission


class StaleWrite(TicketDeskError):
    status_code = 409
    error = "Stale write"

    def __init__(self, ticket_id: str, expected: Dict[str, Any]):
        super().__init__(
            f"Ticket {ticket_id} changed concurrently; expected {expected}",
            ticket_id=ticket_id,
            expected=expected,
        )
        self.ticket_id = ticket_id


class DataIntegrityError(TicketDeskError):
    status_code = 500
    error = "Data integrity error"
