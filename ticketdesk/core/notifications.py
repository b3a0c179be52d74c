import logging
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class TicketEvent(BaseModel):
    kind: str
    ticket_id: str
    ticket_number: str
    actor_id: str
    recipient_id: Optional[str] = None
    summary: str
    occurred_at: datetime


class Notifier:
    """Receives lifecycle events; delivering them is someone else's job."""

    def notify(self, event: TicketEvent) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    def notify(self, event: TicketEvent) -> None:
        logger.info(
            "ticket event %s on %s for %s: %s",
            event.kind, event.ticket_number, event.recipient_id or "-", event.summary,
        )


class RecordingNotifier(Notifier):
    """Keeps every event in memory."""

    def __init__(self):
        self.events: List[TicketEvent] = []

    def notify(self, event: TicketEvent) -> None:
        self.events.append(event)
