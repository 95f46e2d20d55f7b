"""
Dispatch Models
Outbound messages, provider results and call correlation records
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from outreach.domain.models.compliance import ComplianceViolation
from outreach.domain.models.consent import ConsentRecord
from outreach.domain.models.contact_attempt import CampaignType, ContactChannel, ContactOutcome


class OutboundMessage(BaseModel):
    """
    Snapshot of one outbound message as seen by the compliance gate.

    The gate only reads it; dispatchers build it after rendering content
    and loading the recipient's consent.
    """
    channel: ContactChannel
    recipient_email: Optional[str] = None
    recipient_phone: Optional[str] = None
    subject: Optional[str] = None
    html: Optional[str] = None
    text: Optional[str] = None
    is_marketing: bool = True
    consent: Optional[ConsentRecord] = None

    @property
    def content(self) -> str:
        return "\n".join(part for part in (self.subject, self.html, self.text) if part)

    def snapshot(self) -> Dict[str, Any]:
        """Small payload copy stored with violations (no full bodies)."""
        return {
            "channel": self.channel.value,
            "recipient_email": self.recipient_email,
            "recipient_phone": self.recipient_phone,
            "subject": self.subject,
            "is_marketing": self.is_marketing,
            "has_consent_record": self.consent is not None,
        }


class OutboundEmail(BaseModel):
    to: str
    from_email: str
    from_name: Optional[str] = None
    subject: str
    html: str
    text: Optional[str] = None
    reply_to: Optional[str] = None


class EmailSendResult(BaseModel):
    accepted: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class DispatchResult(BaseModel):
    """Per-lead result of an email or voice dispatch"""
    success: bool
    lead_id: Optional[str] = None
    provider_ref: Optional[str] = None
    error: Optional[str] = None
    blocked: bool = False
    violations: List[ComplianceViolation] = Field(default_factory=list)


class CallPlacement(BaseModel):
    """Correlates a provider call reference to the lead it was placed for."""
    call_ref: str
    lead_id: str
    campaign_type: CampaignType
    phone_number: str
    script_id: str
    placed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CallCompletion(BaseModel):
    """Provider call-completion event after parsing"""
    call_ref: str
    provider_status: str = "unknown"
    duration_seconds: int = 0
    outcome: Optional[ContactOutcome] = None
    notes: Optional[str] = None


class EmailEventType(str, Enum):
    DELIVERED = "delivered"
    OPEN = "open"
    CLICK = "click"
    BOUNCE = "bounce"
    SPAM_REPORT = "spam_report"


class EmailEvent(BaseModel):
    """Engagement event reported by the email provider"""
    provider_ref: str
    event: EmailEventType
    lead_id: Optional[str] = None
    email: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
