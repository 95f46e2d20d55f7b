"""
Email Dispatcher
Renders, gates and sends outbound email; records campaign outcomes

Every send goes through the compliance gate. Violations are persisted;
a critical violation blocks the send before the provider is called.
Provider failures are not retried: the caller gets a failed DispatchResult
and campaign sends record a disconnected attempt.
"""
import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional
from urllib.parse import quote

from outreach.core.clock import Clock, SystemClock
from outreach.core.config import OutreachConfig
from outreach.domain.interfaces.email_provider import EmailProvider
from outreach.domain.interfaces.errors import ProviderError
from outreach.domain.interfaces.lead_repository import LeadNotFoundError, LeadRepository
from outreach.domain.models.consent import ConsentRecord
from outreach.domain.models.contact_attempt import CampaignType, ContactChannel, ContactOutcome
from outreach.domain.models.dispatch import DispatchResult, OutboundEmail, OutboundMessage
from outreach.domain.models.inbound_email import CanonicalEmail
from outreach.domain.models.lead import Lead
from outreach.domain.models.support_ticket import SupportTicket
from outreach.domain.services.compliance_gate import ComplianceGate
from outreach.domain.services.email_template_manager import (
    EmailTemplateManager,
    RenderedEmail,
    get_email_template_manager,
)
from outreach.domain.services.outcome_tracker import OutcomeTracker

logger = logging.getLogger(__name__)


class EmailDispatcher:
    """
    Outbound email channel.

    Responsibilities:
    - Render campaign, auto-reply and internal templates
    - Run the compliance gate and persist its violations
    - Send through the EmailProvider, one message at a time
    - Record campaign outcomes through the OutcomeTracker
    """

    def __init__(
        self,
        provider: EmailProvider,
        repository: LeadRepository,
        gate: ComplianceGate,
        outcome_tracker: OutcomeTracker,
        config: Optional[OutreachConfig] = None,
        template_manager: Optional[EmailTemplateManager] = None,
        clock: Optional[Clock] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.provider = provider
        self.repository = repository
        self.gate = gate
        self.outcome_tracker = outcome_tracker
        self.config = config or OutreachConfig()
        self.template_manager = template_manager or get_email_template_manager()
        self.clock = clock or SystemClock()
        self._sleep = sleep

    def common_context(self, recipient: str, now: datetime) -> dict:
        """Variables every template footer reads."""
        base_url = self.config.public_base_url.rstrip("/")
        return {
            "company_name": self.config.company_name,
            "support_email": self.config.support_email,
            "unsubscribe_url": f"{self.config.unsubscribe_base_url}?email={quote(recipient)}",
            "privacy_url": f"{base_url}/privacy",
            "year": now.year,
            "sender_name": f"The {self.config.company_name} Team",
        }

    def render_campaign(self, lead: Lead, campaign: CampaignType, now: datetime) -> RenderedEmail:
        context = self.common_context(lead.email, now)
        context.update({
            "recipient_name": lead.name or "there",
            "recipient_company": lead.company,
        })
        return self.template_manager.render_email(campaign.value, **context)

    @staticmethod
    def outbound_message(
        to: str, rendered: RenderedEmail, consent: Optional[ConsentRecord] = None
    ) -> OutboundMessage:
        return OutboundMessage(
            channel=ContactChannel.EMAIL,
            recipient_email=to,
            subject=rendered.subject,
            html=rendered.body_html,
            text=rendered.body,
            is_marketing=rendered.is_marketing,
            consent=consent,
        )

    async def send_email(
        self,
        to: str,
        rendered: RenderedEmail,
        consent: Optional[ConsentRecord] = None,
        lead_id: Optional[str] = None,
        reply_to: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> DispatchResult:
        """
        Gate and send one rendered email.

        Never raises for provider failures; they come back as a failed result.
        """
        now = now or self.clock.now()

        violations = self.gate.validate(self.outbound_message(to, rendered, consent), now)
        for violation in violations:
            await self.repository.append_violation(violation)

        if self.gate.is_blocking(violations):
            logger.warning(f"Email to {to} blocked by compliance: {[v.rule_id for v in violations]}")
            return DispatchResult(
                success=False,
                lead_id=lead_id,
                blocked=True,
                error="Blocked by compliance gate",
                violations=violations,
            )

        email = OutboundEmail(
            to=to,
            from_email=self.config.support_email,
            from_name=self.config.company_name,
            subject=rendered.subject,
            html=rendered.body_html,
            text=rendered.body,
            reply_to=reply_to,
        )

        try:
            result = await self.provider.send(email)
        except ProviderError as e:
            logger.error(f"Email provider failed for {to}: {e}")
            return DispatchResult(success=False, lead_id=lead_id, error=str(e), violations=violations)
        except Exception as e:
            logger.error(f"Unexpected error sending email to {to}: {e}")
            return DispatchResult(success=False, lead_id=lead_id, error=str(e), violations=violations)

        if not result.accepted:
            logger.error(f"Email to {to} not accepted: {result.error}")
            return DispatchResult(
                success=False,
                lead_id=lead_id,
                error=result.error or "Email not accepted",
                violations=violations,
            )

        return DispatchResult(
            success=True,
            lead_id=lead_id,
            provider_ref=result.message_id,
            violations=violations,
        )

    async def send_to_lead(self, lead: Lead, campaign: CampaignType) -> DispatchResult:
        """Send one campaign email and record its outcome."""
        now = self.clock.now()
        rendered = self.render_campaign(lead, campaign, now)
        consent = await self.repository.get_consent(lead.email)

        result = await self.send_email(lead.email, rendered, consent=consent, lead_id=lead.id, now=now)
        if result.blocked:
            return result

        outcome = ContactOutcome.CONNECTED if result.success else ContactOutcome.DISCONNECTED
        try:
            await self.outcome_tracker.record(
                lead_id=lead.id,
                channel=ContactChannel.EMAIL,
                outcome=outcome,
                now=now,
                campaign_type=campaign,
                provider_ref=result.provider_ref,
                notes=result.error,
            )
        except LeadNotFoundError:
            logger.warning(f"Lead {lead.id} disappeared before its email outcome was recorded")

        return result

    async def send_campaign(self, leads: List[Lead], campaign: CampaignType) -> List[DispatchResult]:
        """
        Send a campaign to each lead in order.

        Leads are processed one at a time with the configured delay between
        sends.
        """
        results = []
        delay = self.config.dispatch.email_delay_seconds

        for index, lead in enumerate(leads):
            if index and delay:
                await self._sleep(delay)
            results.append(await self.send_to_lead(lead, campaign))

        sent = sum(1 for r in results if r.success)
        blocked = sum(1 for r in results if r.blocked)
        logger.info(
            f"{campaign.value} campaign: {sent} sent, {blocked} blocked, "
            f"{len(results) - sent - blocked} failed"
        )
        return results

    async def send_auto_reply(
        self,
        email: CanonicalEmail,
        ticket: SupportTicket,
        reply_body: str,
        fallback_body: Optional[str] = None,
    ) -> DispatchResult:
        """
        Reply to an inbound email; transactional, so no marketing consent is needed.

        The sender's subject and a drafted body can both trip the content
        rules. When the draft would be blocked and a fallback_body is given,
        the reply goes out with the neutral subject and the fallback body.
        """
        now = self.clock.now()
        rendered = self.render_auto_reply(email, ticket, reply_body, now, original_subject=email.subject)

        if fallback_body is not None:
            violations = self.gate.validate(self.outbound_message(email.from_address, rendered), now)
            if self.gate.is_blocking(violations):
                logger.info(
                    f"Auto-reply draft for ticket {ticket.id} would be blocked "
                    f"({[v.rule_id for v in violations]}), sending the standard reply"
                )
                rendered = self.render_auto_reply(email, ticket, fallback_body, now)

        return await self.send_email(email.from_address, rendered, reply_to=email.to_address, now=now)

    def render_auto_reply(
        self,
        email: CanonicalEmail,
        ticket: SupportTicket,
        reply_body: str,
        now: datetime,
        original_subject: Optional[str] = None,
    ) -> RenderedEmail:
        context = self.common_context(email.from_address, now)
        context.update({
            "recipient_name": email.from_address.split("@")[0],
            "original_subject": original_subject,
            "ticket_ref": ticket.id[:8].upper(),
            "reply_body": reply_body,
        })
        return self.template_manager.render_email("support_auto_reply", **context)

    async def send_internal(self, subject: str, html: str, text: Optional[str] = None) -> DispatchResult:
        """Internal notification to the report recipient."""
        recipient = self.config.report_recipient or self.config.support_email
        rendered = RenderedEmail(
            subject=subject,
            body=text or "",
            body_html=html,
            template_name="internal",
            is_marketing=False,
        )
        return await self.send_email(recipient, rendered)
