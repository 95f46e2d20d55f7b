"""
Inbound Email Processor
Webhook pipeline: normalize -> classify -> ticket -> auto-reply

Classification and reply drafting go through text intelligence under a
timeout with keyword-rule fallback, so every accepted email yields a ticket
and a reply attempt.
"""
import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

from outreach.core.clock import Clock, SystemClock
from outreach.core.config import OutreachConfig
from outreach.domain.interfaces.lead_repository import LeadRepository
from outreach.domain.interfaces.text_intelligence import TextIntelligence
from outreach.domain.models.inbound_email import (
    CanonicalEmail,
    EmailClassification,
    InboundProcessingResult,
)
from outreach.domain.models.support_ticket import SupportTicket
from outreach.domain.services.inbound_email import InboundEmailNormalizer, InboundEmailRejected
from outreach.domain.services.keyword_classifier import classify_email, fallback_reply
from outreach.services.email_dispatcher import EmailDispatcher

logger = logging.getLogger(__name__)


def ticket_id_for(email: CanonicalEmail) -> str:
    """Stable id per provider message so webhook retries hit the same ticket."""
    if email.message_id:
        return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{email.provider}:{email.message_id}"))
    return str(uuid.uuid4())


class InboundEmailProcessor:
    """
    Processes inbound support email webhooks.

    Responsibilities:
    - Normalize provider payloads and reject invalid ones
    - Classify priority, category and sentiment
    - Create one support ticket per email
    - Send one auto-reply per new ticket
    """

    def __init__(
        self,
        normalizer: InboundEmailNormalizer,
        text_intelligence: Optional[TextIntelligence],
        repository: LeadRepository,
        email_dispatcher: EmailDispatcher,
        config: Optional[OutreachConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self.normalizer = normalizer
        self.text_intelligence = text_intelligence
        self.repository = repository
        self.email_dispatcher = email_dispatcher
        self.config = config or OutreachConfig()
        self.clock = clock or SystemClock()
        self.timeout_seconds = self.config.text_intelligence.timeout_seconds

    async def classify(self, email: CanonicalEmail) -> EmailClassification:
        if self.text_intelligence is None:
            return classify_email(email)
        try:
            return await asyncio.wait_for(self.text_intelligence.classify(email), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"Classification timed out for email from {email.from_address}, using keyword rules")
        except Exception as e:
            logger.warning(f"Classification failed for email from {email.from_address}: {e}, using keyword rules")
        return classify_email(email)

    async def draft_reply(self, email: CanonicalEmail, classification: EmailClassification) -> str:
        fallback = fallback_reply(classification, self.config.company_name)
        if self.text_intelligence is None:
            return fallback
        try:
            reply = await asyncio.wait_for(
                self.text_intelligence.generate_reply(email, classification),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Reply generation timed out for {email.from_address}, using standard reply")
            return fallback
        except Exception as e:
            logger.warning(f"Reply generation failed for {email.from_address}: {e}, using standard reply")
            return fallback
        return reply.strip() if reply and reply.strip() else fallback

    async def process(self, raw: Dict[str, Any], provider: str) -> InboundProcessingResult:
        """Handle one webhook payload. Never raises for invalid input."""
        now = self.clock.now()

        try:
            email = self.normalizer.normalize(raw, provider, now)
        except InboundEmailRejected as e:
            logger.warning(f"Rejected inbound email ({provider}): {e.reason}")
            return InboundProcessingResult(success=False, message=e.reason)

        ticket_id = ticket_id_for(email)
        existing = await self.repository.get_ticket(ticket_id)
        if existing is not None:
            logger.info(f"Duplicate delivery of message {email.message_id}, ticket {ticket_id} already exists")
            return InboundProcessingResult(
                success=True,
                message="Duplicate email, ticket already exists",
                ticket_id=ticket_id,
            )

        classification = await self.classify(email)

        ticket = SupportTicket(
            id=ticket_id,
            email=email.from_address,
            subject=email.subject,
            body=email.body,
            priority=classification.priority,
            category=classification.category.value,
            sentiment=classification.sentiment.value,
            source_message_id=email.message_id,
            created_at=now,
            updated_at=now,
        )
        try:
            ticket = await self.repository.upsert_ticket(ticket)
        except Exception as e:
            logger.error(f"Failed to store ticket for email from {email.from_address}: {e}")
            return InboundProcessingResult(success=False, message="Failed to create support ticket")

        logger.info(
            f"Created ticket {ticket.id} for {email.from_address} "
            f"({classification.category.value}, {classification.priority.value})"
        )

        reply_body = await self.draft_reply(email, classification)
        reply = await self.email_dispatcher.send_auto_reply(
            email,
            ticket,
            reply_body,
            fallback_body=fallback_reply(classification, self.config.company_name),
        )
        if not reply.success:
            logger.warning(f"Auto-reply for ticket {ticket.id} not sent: {reply.error}")

        return InboundProcessingResult(
            success=True,
            message="Email processed and ticket created",
            ticket_id=ticket.id,
            reply_sent=reply.success,
        )
