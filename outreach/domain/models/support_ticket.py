"""
Support Ticket Model
Ticket created for every accepted inbound email
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field


class TicketStatus(str, Enum):
    """Lifecycle of a support ticket"""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


PRIORITY_RANK: Dict[TicketPriority, int] = {
    TicketPriority.LOW: 0,
    TicketPriority.MEDIUM: 1,
    TicketPriority.HIGH: 2,
    TicketPriority.URGENT: 3,
}

STATUS_ORDER: Dict[TicketStatus, int] = {
    TicketStatus.OPEN: 0,
    TicketStatus.IN_PROGRESS: 1,
    TicketStatus.RESOLVED: 2,
    TicketStatus.CLOSED: 3,
}


class InvalidTicketTransition(ValueError):
    """Raised when a ticket status change would move backwards."""

    def __init__(self, ticket_id: str, current: TicketStatus, requested: TicketStatus):
        self.ticket_id = ticket_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Ticket {ticket_id}: cannot move from {current.value} to {requested.value}"
        )


class SupportTicket(BaseModel):
    """
    Support ticket.

    Status moves forward only (open -> in_progress -> resolved -> closed);
    steps may be skipped. Going back requires reopen().
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    email: str
    subject: str = ""
    body: str = ""
    status: TicketStatus = TicketStatus.OPEN
    priority: TicketPriority = TicketPriority.MEDIUM
    category: str = "general"
    sentiment: str = "neutral"
    source_message_id: Optional[str] = None

    escalated_at: Optional[datetime] = None
    archived: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    def can_advance_to(self, status: TicketStatus) -> bool:
        return STATUS_ORDER[status] >= STATUS_ORDER[self.status]

    def advance(self, status: TicketStatus, now: datetime) -> "SupportTicket":
        """
        Return a copy moved forward to `status`.

        Raises:
            InvalidTicketTransition: If `status` is earlier than the current one
        """
        if not self.can_advance_to(status):
            raise InvalidTicketTransition(self.id, self.status, status)
        if status == self.status:
            return self

        update = {"status": status, "updated_at": now}
        if status in (TicketStatus.RESOLVED, TicketStatus.CLOSED) and self.resolved_at is None:
            update["resolved_at"] = now
        if status == TicketStatus.CLOSED:
            update["closed_at"] = now
        return self.model_copy(update=update)

    def reopen(self, now: datetime) -> "SupportTicket":
        """Explicit external action: put a resolved/closed ticket back to open."""
        return self.model_copy(update={
            "status": TicketStatus.OPEN,
            "resolved_at": None,
            "closed_at": None,
            "escalated_at": None,
            "archived": False,
            "updated_at": now,
        })

    def raise_priority(self, priority: TicketPriority, now: datetime) -> "SupportTicket":
        """Return a copy with the higher of the current and given priority."""
        if PRIORITY_RANK[priority] <= PRIORITY_RANK[self.priority]:
            return self
        return self.model_copy(update={"priority": priority, "updated_at": now})
