"""
In-Memory Lead Repository
Process-local implementation for development and tests
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from outreach.domain.interfaces.lead_repository import LeadRepository
from outreach.domain.models.compliance import ComplianceViolation
from outreach.domain.models.consent import ConsentRecord
from outreach.domain.models.contact_attempt import ContactAttempt
from outreach.domain.models.dispatch import CallPlacement, EmailEvent
from outreach.domain.models.lead import Lead, LeadFilter
from outreach.domain.models.report import OutreachReport
from outreach.domain.models.support_ticket import SupportTicket, TicketStatus

logger = logging.getLogger(__name__)


class InMemoryLeadRepository(LeadRepository):
    """
    Dict/list backed repository.

    Records are copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self):
        self.leads: Dict[str, Lead] = {}
        self.attempts: List[ContactAttempt] = []
        self.violations: List[ComplianceViolation] = []
        self.tickets: Dict[str, SupportTicket] = {}
        self.consents: Dict[str, ConsentRecord] = {}
        self.call_placements: Dict[str, CallPlacement] = {}
        self.email_events: List[EmailEvent] = []
        self.reports: Dict[str, OutreachReport] = {}

    # Leads

    async def get(self, lead_id: str) -> Optional[Lead]:
        lead = self.leads.get(lead_id)
        return lead.model_copy() if lead else None

    async def get_by_email(self, email: str) -> Optional[Lead]:
        email = email.strip().lower()
        for lead in self.leads.values():
            if lead.email == email:
                return lead.model_copy()
        return None

    async def list(self, lead_filter: Optional[LeadFilter] = None) -> List[Lead]:
        lead_filter = lead_filter or LeadFilter()
        leads = [lead.model_copy() for lead in self.leads.values() if lead_filter.matches(lead)]
        leads.sort(key=lambda lead: (-lead.score, lead.created_at))
        if lead_filter.limit is not None:
            leads = leads[:lead_filter.limit]
        return leads

    async def upsert(self, lead: Lead) -> Lead:
        for existing in self.leads.values():
            if existing.email == lead.email and existing.id != lead.id:
                raise ValueError(f"Lead email already exists: {lead.email}")
        self.leads[lead.id] = lead.model_copy()
        return lead.model_copy()

    # Contact history

    async def append_contact_attempt(self, attempt: ContactAttempt) -> None:
        self.attempts.append(attempt)

    async def list_contact_attempts(
        self,
        lead_id: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> List[ContactAttempt]:
        attempts = [
            a for a in self.attempts
            if (lead_id is None or a.lead_id == lead_id) and (since is None or a.created_at >= since)
        ]
        return sorted(attempts, key=lambda a: a.created_at)

    # Compliance violations

    async def append_violation(self, violation: ComplianceViolation) -> None:
        self.violations.append(violation)

    async def list_violations(self, since: Optional[datetime] = None) -> List[ComplianceViolation]:
        violations = [v for v in self.violations if since is None or v.created_at >= since]
        return sorted(violations, key=lambda v: v.created_at, reverse=True)

    async def delete_violations_before(self, cutoff: datetime) -> int:
        before = len(self.violations)
        self.violations = [v for v in self.violations if v.created_at >= cutoff]
        return before - len(self.violations)

    # Support tickets

    async def upsert_ticket(self, ticket: SupportTicket) -> SupportTicket:
        self.tickets[ticket.id] = ticket.model_copy()
        return ticket.model_copy()

    async def get_ticket(self, ticket_id: str) -> Optional[SupportTicket]:
        ticket = self.tickets.get(ticket_id)
        return ticket.model_copy() if ticket else None

    async def list_tickets(
        self,
        statuses: Optional[List[TicketStatus]] = None,
        include_archived: bool = False,
    ) -> List[SupportTicket]:
        tickets = [
            t.model_copy() for t in self.tickets.values()
            if (statuses is None or t.status in statuses) and (include_archived or not t.archived)
        ]
        return sorted(tickets, key=lambda t: t.created_at)

    # Consent

    async def get_consent(self, email: str) -> Optional[ConsentRecord]:
        record = self.consents.get(email.strip().lower())
        return record.model_copy(deep=True) if record else None

    async def upsert_consent(self, record: ConsentRecord) -> ConsentRecord:
        self.consents[record.email] = record.model_copy(deep=True)
        return record.model_copy(deep=True)

    async def list_consents(self) -> List[ConsentRecord]:
        return [record.model_copy(deep=True) for record in self.consents.values()]

    async def delete_consent(self, email: str) -> bool:
        return self.consents.pop(email.strip().lower(), None) is not None

    # Call correlation

    async def record_call_placement(self, placement: CallPlacement) -> None:
        self.call_placements[placement.call_ref] = placement

    async def get_call_placement(self, call_ref: str) -> Optional[CallPlacement]:
        return self.call_placements.get(call_ref)

    # Email engagement

    async def append_email_event(self, event: EmailEvent) -> None:
        self.email_events.append(event)

    async def list_email_events(self, since: Optional[datetime] = None) -> List[EmailEvent]:
        events = [e for e in self.email_events if since is None or e.created_at >= since]
        return sorted(events, key=lambda e: e.created_at)

    # Reports

    async def get_report(self, report_id: str) -> Optional[OutreachReport]:
        report = self.reports.get(report_id)
        return report.model_copy(deep=True) if report else None

    async def upsert_report(self, report: OutreachReport) -> OutreachReport:
        self.reports[report.id] = report.model_copy(deep=True)
        return report.model_copy(deep=True)
