"""
Tests for support ticket transitions
"""
from datetime import datetime, timedelta, timezone

import pytest

from outreach.domain.models.support_ticket import (
    InvalidTicketTransition,
    SupportTicket,
    TicketPriority,
    TicketStatus,
)

FIXED_NOW = datetime(2024, 6, 5, 16, 0, tzinfo=timezone.utc)


class TestTicketStatus:
    """Tests for forward-only status changes"""

    def test_advance_sets_timestamps(self):
        """Closing a ticket directly also marks it resolved"""
        ticket = SupportTicket(email="a@example.com")

        closed = ticket.advance(TicketStatus.CLOSED, FIXED_NOW)

        assert closed.status == TicketStatus.CLOSED
        assert closed.resolved_at == FIXED_NOW
        assert closed.closed_at == FIXED_NOW
        assert ticket.status == TicketStatus.OPEN

    def test_keeps_first_resolution_time(self):
        """resolved_at is not overwritten when closing later"""
        resolved = SupportTicket(email="a@example.com").advance(TicketStatus.RESOLVED, FIXED_NOW)

        closed = resolved.advance(TicketStatus.CLOSED, FIXED_NOW + timedelta(days=1))

        assert closed.resolved_at == FIXED_NOW

    def test_backwards_move_raises(self):
        """A resolved ticket cannot go back to in_progress"""
        resolved = SupportTicket(email="a@example.com", status=TicketStatus.RESOLVED)

        with pytest.raises(InvalidTicketTransition) as exc:
            resolved.advance(TicketStatus.IN_PROGRESS, FIXED_NOW)
        assert exc.value.current == TicketStatus.RESOLVED

    def test_same_status_is_noop(self):
        """Advancing to the current status returns the ticket unchanged"""
        ticket = SupportTicket(email="a@example.com", status=TicketStatus.IN_PROGRESS)
        assert ticket.advance(TicketStatus.IN_PROGRESS, FIXED_NOW) is ticket

    def test_reopen(self):
        """Reopen clears resolution, escalation and archive state"""
        ticket = SupportTicket(
            email="a@example.com",
            status=TicketStatus.CLOSED,
            resolved_at=FIXED_NOW,
            closed_at=FIXED_NOW,
            escalated_at=FIXED_NOW,
            archived=True,
        )

        reopened = ticket.reopen(FIXED_NOW)

        assert reopened.status == TicketStatus.OPEN
        assert reopened.resolved_at is None
        assert reopened.closed_at is None
        assert reopened.escalated_at is None
        assert not reopened.archived


class TestTicketPriority:
    """Tests for priority changes"""

    def test_priority_only_increases(self):
        """Lower priorities are ignored"""
        ticket = SupportTicket(email="a@example.com", priority=TicketPriority.HIGH)

        assert ticket.raise_priority(TicketPriority.LOW, FIXED_NOW) is ticket
        assert ticket.raise_priority(TicketPriority.URGENT, FIXED_NOW).priority == TicketPriority.URGENT
