from datetime import datetime, timedelta
from typing import Mapping, Optional
from ticketdesk.core.config import settings


def compute_sla_deadline(priority, now: datetime, policy: Optional[Mapping[str, int]] = None) -> Optional[datetime]:
    """
    Due-by timestamp for a ticket of the given priority, counted from ``now``.

    ``policy`` maps priority to hours and defaults to the configured table.
    Priorities the policy does not list have no deadline.
    """
    policy = settings.SLA_POLICY_HOURS if policy is None else policy
    hours = policy.get(getattr(priority, "value", priority))
    if hours is None:
        return None
    return now + timedelta(hours=hours)
