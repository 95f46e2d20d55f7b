"""
Supabase Lead Repository
Lead store backed by Supabase PostgreSQL tables

Tables:
    leads, contact_attempts, compliance_violations, support_tickets,
    consent_records, call_placements, email_events, outreach_reports

Rows are the JSON dump of the domain models; every table has a primary key
on the model id (consent_records on email, call_placements on call_ref).
"""
import logging
from datetime import datetime
from typing import List, Optional

from supabase import Client, create_client

from outreach.core.config import Settings
from outreach.domain.interfaces.lead_repository import LeadRepository
from outreach.domain.models.compliance import ComplianceViolation
from outreach.domain.models.consent import ConsentRecord
from outreach.domain.models.contact_attempt import ContactAttempt
from outreach.domain.models.dispatch import CallPlacement, EmailEvent
from outreach.domain.models.lead import Lead, LeadFilter
from outreach.domain.models.report import OutreachReport
from outreach.domain.models.support_ticket import SupportTicket, TicketStatus

logger = logging.getLogger(__name__)

LEADS_TABLE = "leads"
ATTEMPTS_TABLE = "contact_attempts"
VIOLATIONS_TABLE = "compliance_violations"
TICKETS_TABLE = "support_tickets"
CONSENT_TABLE = "consent_records"
CALLS_TABLE = "call_placements"
EMAIL_EVENTS_TABLE = "email_events"
REPORTS_TABLE = "outreach_reports"


def get_supabase(settings: Settings) -> Client:
    """
    Create a Supabase client.

    Raises:
        RuntimeError: If Supabase URL or service key is not configured
    """
    if not settings.supabase_url:
        raise RuntimeError("SUPABASE_URL is not configured. Set SUPABASE_URL environment variable.")
    if not settings.supabase_service_key:
        raise RuntimeError(
            "SUPABASE_SERVICE_KEY is not configured. Set SUPABASE_SERVICE_KEY environment variable."
        )
    return create_client(settings.supabase_url, settings.supabase_service_key)


class SupabaseLeadRepository(LeadRepository):
    """
    LeadRepository over the Supabase REST client.

    Errors are logged and re-raised; callers decide whether a failed
    read or write skips a lead or fails a cadence step.
    """

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _table(self, name: str):
        return self.supabase.table(name)

    # Leads

    async def get(self, lead_id: str) -> Optional[Lead]:
        response = self._table(LEADS_TABLE).select("*").eq("id", lead_id).limit(1).execute()
        return Lead.model_validate(response.data[0]) if response.data else None

    async def get_by_email(self, email: str) -> Optional[Lead]:
        response = self._table(LEADS_TABLE).select("*").eq(
            "email", email.strip().lower()
        ).limit(1).execute()
        return Lead.model_validate(response.data[0]) if response.data else None

    async def list(self, lead_filter: Optional[LeadFilter] = None) -> List[Lead]:
        lead_filter = lead_filter or LeadFilter()
        query = self._table(LEADS_TABLE).select("*")

        if not lead_filter.include_archived:
            query = query.eq("archived", False)
        if lead_filter.statuses is not None:
            query = query.in_("status", [s.value for s in lead_filter.statuses])

        query = query.order("score", desc=True).order("created_at")
        if lead_filter.limit is not None and lead_filter.has_phone is None:
            query = query.limit(lead_filter.limit)

        try:
            response = query.execute()
        except Exception as e:
            logger.error(f"Error listing leads: {e}")
            raise

        leads = [Lead.model_validate(row) for row in response.data or []]
        leads = [lead for lead in leads if lead_filter.matches(lead)]
        if lead_filter.limit is not None:
            leads = leads[:lead_filter.limit]
        return leads

    async def upsert(self, lead: Lead) -> Lead:
        try:
            response = self._table(LEADS_TABLE).upsert(
                lead.model_dump(mode="json"), on_conflict="id"
            ).execute()
        except Exception as e:
            logger.error(f"Failed to upsert lead {lead.id}: {e}")
            raise
        return Lead.model_validate(response.data[0]) if response.data else lead

    # Contact history

    async def append_contact_attempt(self, attempt: ContactAttempt) -> None:
        try:
            self._table(ATTEMPTS_TABLE).insert(attempt.model_dump(mode="json")).execute()
        except Exception as e:
            logger.error(f"Failed to append contact attempt for lead {attempt.lead_id}: {e}")
            raise

    async def list_contact_attempts(
        self,
        lead_id: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> List[ContactAttempt]:
        query = self._table(ATTEMPTS_TABLE).select("*")
        if lead_id is not None:
            query = query.eq("lead_id", lead_id)
        if since is not None:
            query = query.gte("created_at", since.isoformat())
        response = query.order("created_at").execute()
        return [ContactAttempt.model_validate(row) for row in response.data or []]

    # Compliance violations

    async def append_violation(self, violation: ComplianceViolation) -> None:
        try:
            self._table(VIOLATIONS_TABLE).insert(violation.model_dump(mode="json")).execute()
        except Exception as e:
            logger.error(f"Failed to record compliance violation {violation.rule_id}: {e}")
            raise

    async def list_violations(self, since: Optional[datetime] = None) -> List[ComplianceViolation]:
        query = self._table(VIOLATIONS_TABLE).select("*")
        if since is not None:
            query = query.gte("created_at", since.isoformat())
        response = query.order("created_at", desc=True).execute()
        return [ComplianceViolation.model_validate(row) for row in response.data or []]

    async def delete_violations_before(self, cutoff: datetime) -> int:
        response = self._table(VIOLATIONS_TABLE).delete().lt("created_at", cutoff.isoformat()).execute()
        return len(response.data or [])

    # Support tickets

    async def upsert_ticket(self, ticket: SupportTicket) -> SupportTicket:
        try:
            self._table(TICKETS_TABLE).upsert(ticket.model_dump(mode="json"), on_conflict="id").execute()
        except Exception as e:
            logger.error(f"Failed to upsert ticket {ticket.id}: {e}")
            raise
        return ticket

    async def get_ticket(self, ticket_id: str) -> Optional[SupportTicket]:
        response = self._table(TICKETS_TABLE).select("*").eq("id", ticket_id).limit(1).execute()
        return SupportTicket.model_validate(response.data[0]) if response.data else None

    async def list_tickets(
        self,
        statuses: Optional[List[TicketStatus]] = None,
        include_archived: bool = False,
    ) -> List[SupportTicket]:
        query = self._table(TICKETS_TABLE).select("*")
        if statuses is not None:
            query = query.in_("status", [s.value for s in statuses])
        if not include_archived:
            query = query.eq("archived", False)
        response = query.order("created_at").execute()
        return [SupportTicket.model_validate(row) for row in response.data or []]

    # Consent

    async def get_consent(self, email: str) -> Optional[ConsentRecord]:
        response = self._table(CONSENT_TABLE).select("*").eq(
            "email", email.strip().lower()
        ).limit(1).execute()
        return ConsentRecord.model_validate(response.data[0]) if response.data else None

    async def upsert_consent(self, record: ConsentRecord) -> ConsentRecord:
        try:
            self._table(CONSENT_TABLE).upsert(record.model_dump(mode="json"), on_conflict="email").execute()
        except Exception as e:
            logger.error(f"Failed to store consent for {record.email}: {e}")
            raise
        return record

    async def list_consents(self) -> List[ConsentRecord]:
        response = self._table(CONSENT_TABLE).select("*").execute()
        return [ConsentRecord.model_validate(row) for row in response.data or []]

    async def delete_consent(self, email: str) -> bool:
        response = self._table(CONSENT_TABLE).delete().eq("email", email.strip().lower()).execute()
        return bool(response.data)

    # Call correlation

    async def record_call_placement(self, placement: CallPlacement) -> None:
        self._table(CALLS_TABLE).upsert(placement.model_dump(mode="json"), on_conflict="call_ref").execute()

    async def get_call_placement(self, call_ref: str) -> Optional[CallPlacement]:
        response = self._table(CALLS_TABLE).select("*").eq("call_ref", call_ref).limit(1).execute()
        return CallPlacement.model_validate(response.data[0]) if response.data else None

    # Email engagement

    async def append_email_event(self, event: EmailEvent) -> None:
        self._table(EMAIL_EVENTS_TABLE).insert(event.model_dump(mode="json")).execute()

    async def list_email_events(self, since: Optional[datetime] = None) -> List[EmailEvent]:
        query = self._table(EMAIL_EVENTS_TABLE).select("*")
        if since is not None:
            query = query.gte("created_at", since.isoformat())
        response = query.order("created_at").execute()
        return [EmailEvent.model_validate(row) for row in response.data or []]

    # Reports

    async def get_report(self, report_id: str) -> Optional[OutreachReport]:
        response = self._table(REPORTS_TABLE).select("*").eq("id", report_id).limit(1).execute()
        return OutreachReport.model_validate(response.data[0]) if response.data else None

    async def upsert_report(self, report: OutreachReport) -> OutreachReport:
        self._table(REPORTS_TABLE).upsert(report.model_dump(mode="json"), on_conflict="id").execute()
        return report
