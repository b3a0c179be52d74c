"""
Role-based access control.

Each role maps to a fixed set of capability tokens. Wider roles spell out the
capabilities they share with narrower ones as set unions in the table itself;
there is no role hierarchy and no per-user override.
"""
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional
from ticketdesk.core.errors import PermissionDenied
from ticketdesk.schemas.ticket import TicketStatusEnum


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    TEAM_MEMBER = "team_member"
    SUPPORT_STAFF = "support_staff"


class Permission(str, Enum):
    CREATE_TICKETS = "create_tickets"
    VIEW_OWN_TICKETS = "view_own_tickets"
    VIEW_ALL_TICKETS = "view_all_tickets"
    COMMENT_ON_TICKETS = "comment_on_tickets"
    UPDATE_TICKET_STATUS = "update_ticket_status"
    RESOLVE_TICKETS = "resolve_tickets"
    CLOSE_TICKETS = "close_tickets"
    REOPEN_TICKETS = "reopen_tickets"
    ASSIGN_TICKETS = "assign_tickets"
    ESCALATE_TICKETS = "escalate_tickets"
    CHANGE_PRIORITY = "change_priority"
    SCHEDULE_FOLLOW_UP = "schedule_follow_up"
    VIEW_TICKET_REPORTS = "view_ticket_reports"
    VIEW_AUDIT_LOG = "view_audit_log"
    MANAGE_CATEGORIES = "manage_categories"
    MANAGE_FORM_FIELDS = "manage_form_fields"
    MANAGE_ROLES = "manage_roles"


_SUPPORT_STAFF = frozenset({
    Permission.CREATE_TICKETS,
    Permission.VIEW_OWN_TICKETS,
    Permission.COMMENT_ON_TICKETS,
})

_TEAM_MEMBER = _SUPPORT_STAFF | frozenset({
    Permission.UPDATE_TICKET_STATUS,
    Permission.RESOLVE_TICKETS,
    Permission.SCHEDULE_FOLLOW_UP,
})

# Managers see every ticket. Tickets carry a department but actors do not, so
# visibility is not narrowed to the manager's own department.
_MANAGER = _TEAM_MEMBER | frozenset({
    Permission.VIEW_ALL_TICKETS,
    Permission.CLOSE_TICKETS,
    Permission.REOPEN_TICKETS,
    Permission.ASSIGN_TICKETS,
    Permission.ESCALATE_TICKETS,
    Permission.CHANGE_PRIORITY,
    Permission.VIEW_TICKET_REPORTS,
})

ROLE_PERMISSIONS: Dict[Role, FrozenSet[Permission]] = {
    Role.ADMIN: frozenset(Permission),
    Role.MANAGER: _MANAGER,
    Role.TEAM_MEMBER: _TEAM_MEMBER,
    Role.SUPPORT_STAFF: _SUPPORT_STAFF,
}

# (current status, target status) -> capability the actor needs
TRANSITION_PERMISSIONS: Dict[tuple, Permission] = {
    (TicketStatusEnum.NEW, TicketStatusEnum.IN_PROGRESS): Permission.UPDATE_TICKET_STATUS,
    (TicketStatusEnum.IN_PROGRESS, TicketStatusEnum.IN_PROGRESS): Permission.ASSIGN_TICKETS,
    (TicketStatusEnum.IN_PROGRESS, TicketStatusEnum.RESOLVED): Permission.RESOLVE_TICKETS,
    (TicketStatusEnum.RESOLVED, TicketStatusEnum.CLOSED): Permission.CLOSE_TICKETS,
    (TicketStatusEnum.RESOLVED, TicketStatusEnum.IN_PROGRESS): Permission.REOPEN_TICKETS,
    (TicketStatusEnum.CLOSED, TicketStatusEnum.IN_PROGRESS): Permission.REOPEN_TICKETS,
}


def _as_role(role) -> Optional[Role]:
    try:
        return Role(role)
    except ValueError:
        return None


def has_permission(role, permission) -> bool:
    """Unknown roles and unknown permission tokens are never granted."""
    resolved = _as_role(role)
    if resolved is None:
        return False
    try:
        return Permission(permission) in ROLE_PERMISSIONS[resolved]
    except ValueError:
        return False


def has_all(role, permissions: Iterable) -> bool:
    return all(has_permission(role, permission) for permission in permissions)


def has_any(role, permissions: Iterable) -> bool:
    return any(has_permission(role, permission) for permission in permissions)


def require_permission(role, permission) -> None:
    if not has_permission(role, permission):
        raise PermissionDenied(str(getattr(role, "value", role)), str(getattr(permission, "value", permission)))


def permission_for_transition(current_status, target_status) -> Optional[Permission]:
    """Capability guarding a status change, or None when the change is not in the table."""
    try:
        key = (TicketStatusEnum(current_status), TicketStatusEnum(target_status))
    except ValueError:
        return None
    return TRANSITION_PERMISSIONS.get(key)


def transition_guard(role):
    """
    Build the ``authorize(current, target)`` callback the state machine runs
    before each transition attempt, so a retried write is checked against the
    status it actually moves away from.
    """
    def authorize(current_status, target_status) -> None:
        required = permission_for_transition(current_status, target_status)
        if required is not None:
            require_permission(role, required)
    return authorize
