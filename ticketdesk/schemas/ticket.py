from pydantic import Field
from typing import Optional, List, Dict, Any, Union
from datetime import datetime
from enum import Enum
from ticketdesk.schemas.base import CamelModel

FormValue = Union[bool, int, float, str, List[str], None]


class TicketStatusEnum(str, Enum):
    NEW = "new"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"

class PriorityEnum(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class AuditLogResponse(CamelModel):
    id: int
    ticket_id: str
    actor: str = Field(..., description="The actor performing the action.")
    action: str = Field(..., description="The action being performed.")
    previous_state: Optional[str] = Field(None, description="The state of the ticket before the action.")
    new_state: str = Field(..., description="The state of the ticket after the action.")
    reason: Optional[str] = Field(None, description="The rationale or reason for the change.")
    metadata_info: Optional[Dict[str, Any]] = Field(None, description="Extra metadata.")
    timestamp: datetime


class TicketCreate(CamelModel):
    category_id: str = Field(..., description="Owning category.")
    subcategory_id: str = Field(..., description="Subcategory whose form schema the form data is validated against.")
    title: str = Field(..., min_length=1, description="Short summary of the issue.")
    description: Optional[str] = Field(None, description="Free-form description of the issue.")
    priority: PriorityEnum = Field(PriorityEnum.NORMAL, description="Drives the SLA deadline.")
    department: Optional[str] = Field(None, description="Owning department; defaults from the classification.")
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    client_status: Optional[str] = None
    client_mood: Optional[str] = None
    form_data: Dict[str, FormValue] = Field(default_factory=dict, description="Values keyed by form field id.")
    follow_up_required: bool = False
    follow_up_date: Optional[datetime] = None


class TicketResponse(CamelModel):
    id: str
    ticket_number: str
    category_id: str
    subcategory_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    client_status: Optional[str] = None
    client_mood: Optional[str] = None
    form_data: Dict[str, Any] = {}
    status: TicketStatusEnum
    priority: PriorityEnum
    department: Optional[str] = None
    assignee_id: Optional[str] = None
    reported_by_id: str
    sla_deadline: Optional[datetime] = None
    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    is_escalated: bool
    escalated_at: Optional[datetime] = None
    escalated_to_id: Optional[str] = None
    escalation_reason: Optional[str] = None
    follow_up_required: bool
    follow_up_date: Optional[datetime] = None
    ai_tags: Optional[List[str]] = None
    ai_sentiment: Optional[str] = None
    ai_sentiment_score: Optional[int] = None
    ai_suggested_category: Optional[str] = None
    ai_keywords: Optional[List[str]] = None
    created_at: datetime
    updated_at: datetime
    version: int = 1
    history_log: List[Dict[str, Any]] = []


class StatusTransitionRequest(CamelModel):
    status: TicketStatusEnum = Field(..., description="The target status for the ticket.")
    reason: Optional[str] = Field(None, description="The reason for transitioning the status.")
    assignee_id: Optional[str] = Field(None, description="New assignee for an in_progress reassignment.")


class AssignmentRequest(CamelModel):
    assignee_id: str = Field(..., description="The staff member taking the ticket.")
    reason: Optional[str] = None


class EscalationRequest(CamelModel):
    escalated_to_id: str = Field(..., description="Who the ticket is escalated to.")
    reason: str = Field(..., min_length=1, description="Why the ticket is escalated.")


class DeEscalationRequest(CamelModel):
    reason: Optional[str] = None


class PriorityChangeRequest(CamelModel):
    priority: PriorityEnum
    reason: Optional[str] = None


class FollowUpRequest(CamelModel):
    follow_up_required: bool = True
    follow_up_date: Optional[datetime] = None


class CommentCreate(CamelModel):
    content: str = Field(..., min_length=1)
    is_internal: bool = False


class CommentResponse(CommentCreate):
    id: str
    ticket_id: str
    user_id: str
    created_at: datetime


class TicketStats(CamelModel):
    total: int
    new: int
    in_progress: int
    resolved: int
    closed: int
    escalated: int
    overdue: int
