"""
Lead Repository Interface
Abstract persistence contract for leads, contact history, consent,
compliance violations, support tickets and engagement data
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from outreach.domain.models.compliance import ComplianceViolation
from outreach.domain.models.consent import ConsentRecord
from outreach.domain.models.contact_attempt import ContactAttempt
from outreach.domain.models.dispatch import CallPlacement, EmailEvent
from outreach.domain.models.lead import Lead, LeadFilter
from outreach.domain.models.report import OutreachReport
from outreach.domain.models.support_ticket import SupportTicket, TicketStatus


class LeadNotFoundError(LookupError):
    """Raised when an operation references a lead id that does not exist."""

    def __init__(self, lead_id: str):
        self.lead_id = lead_id
        super().__init__(f"Lead not found: {lead_id}")


class LeadRepository(ABC):
    """
    Storage for engine state.

    Implementations must make upsert of a single record atomic. Contact
    attempts and violations are append-only.
    """

    # Leads

    @abstractmethod
    async def get(self, lead_id: str) -> Optional[Lead]:
        pass

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[Lead]:
        pass

    @abstractmethod
    async def list(self, lead_filter: Optional[LeadFilter] = None) -> List[Lead]:
        pass

    @abstractmethod
    async def upsert(self, lead: Lead) -> Lead:
        pass

    # Contact history

    @abstractmethod
    async def append_contact_attempt(self, attempt: ContactAttempt) -> None:
        pass

    @abstractmethod
    async def list_contact_attempts(
        self,
        lead_id: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> List[ContactAttempt]:
        """Attempts ordered by created_at ascending."""
        pass

    # Compliance violations

    @abstractmethod
    async def append_violation(self, violation: ComplianceViolation) -> None:
        pass

    @abstractmethod
    async def list_violations(self, since: Optional[datetime] = None) -> List[ComplianceViolation]:
        """Violations ordered by created_at descending (most recent first)."""
        pass

    @abstractmethod
    async def delete_violations_before(self, cutoff: datetime) -> int:
        pass

    # Support tickets

    @abstractmethod
    async def upsert_ticket(self, ticket: SupportTicket) -> SupportTicket:
        pass

    @abstractmethod
    async def get_ticket(self, ticket_id: str) -> Optional[SupportTicket]:
        pass

    @abstractmethod
    async def list_tickets(
        self,
        statuses: Optional[List[TicketStatus]] = None,
        include_archived: bool = False,
    ) -> List[SupportTicket]:
        pass

    # Consent

    @abstractmethod
    async def get_consent(self, email: str) -> Optional[ConsentRecord]:
        pass

    @abstractmethod
    async def upsert_consent(self, record: ConsentRecord) -> ConsentRecord:
        pass

    @abstractmethod
    async def list_consents(self) -> List[ConsentRecord]:
        pass

    @abstractmethod
    async def delete_consent(self, email: str) -> bool:
        pass

    # Call correlation

    @abstractmethod
    async def record_call_placement(self, placement: CallPlacement) -> None:
        pass

    @abstractmethod
    async def get_call_placement(self, call_ref: str) -> Optional[CallPlacement]:
        pass

    # Email engagement

    @abstractmethod
    async def append_email_event(self, event: EmailEvent) -> None:
        pass

    @abstractmethod
    async def list_email_events(self, since: Optional[datetime] = None) -> List[EmailEvent]:
        pass

    # Reports

    @abstractmethod
    async def get_report(self, report_id: str) -> Optional[OutreachReport]:
        pass

    @abstractmethod
    async def upsert_report(self, report: OutreachReport) -> OutreachReport:
        pass
