import uuid
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, JSON
from ticketdesk.core.db import Base, utcnow


def _generate_id() -> str:
    return str(uuid.uuid4())


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(String(64), primary_key=True, default=_generate_id)
    ticket_number = Column(String(50), nullable=False, unique=True, index=True)

    category_id = Column(String(64), ForeignKey("categories.id"), nullable=False, index=True)
    subcategory_id = Column(String(64), ForeignKey("subcategories.id"), nullable=True)

    client_name = Column(String(255), nullable=True)
    client_email = Column(String(255), nullable=True)
    client_phone = Column(String(50), nullable=True)
    client_status = Column(String(50), nullable=True)
    client_mood = Column(String(50), nullable=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    # Submitted values keyed by form field id, kept exactly as submitted
    form_data = Column(JSON, nullable=False, default=dict)

    status = Column(String(50), nullable=False, default="new", index=True)
    priority = Column(String(20), nullable=False, default="normal", index=True)
    department = Column(String(100), nullable=True, index=True)
    assignee_id = Column(String(255), nullable=True, index=True)
    reported_by_id = Column(String(255), nullable=False)

    sla_deadline = Column(DateTime, nullable=True, index=True)
    first_response_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    closed_at = Column(DateTime, nullable=True)

    is_escalated = Column(Boolean, nullable=False, default=False)
    escalated_at = Column(DateTime, nullable=True)
    escalated_to_id = Column(String(255), nullable=True)
    escalation_reason = Column(Text, nullable=True)

    follow_up_required = Column(Boolean, nullable=False, default=False)
    follow_up_date = Column(DateTime, nullable=True)

    # Written by the external analysis collaborator, never by the lifecycle engine
    ai_tags = Column(JSON, nullable=True)
    ai_sentiment = Column(String(50), nullable=True)
    ai_sentiment_score = Column(Integer, nullable=True)
    ai_suggested_category = Column(String(255), nullable=True)
    ai_keywords = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    # bumped by every lifecycle write; guards compare-and-set updates
    version = Column(Integer, nullable=False, default=1)

    # history_log stored as structured JSON array
    history_log = Column(JSON, nullable=False, default=list)


class TicketComment(Base):
    __tablename__ = "ticket_comments"

    id = Column(String(64), primary_key=True, default=_generate_id)
    ticket_id = Column(String(64), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    is_internal = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)


class AuditLog(Base):
    """
    Immutable structured audit records representing mutations in the system.
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(String(64), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
    actor = Column(String(255), nullable=False)
    action = Column(String(100), nullable=False)
    previous_state = Column(String(50), nullable=True)
    new_state = Column(String(50), nullable=False)
    reason = Column(Text, nullable=True)
    metadata_info = Column(JSON, nullable=True)
    timestamp = Column(DateTime, default=utcnow, index=True)
