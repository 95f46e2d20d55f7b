"""
Inbound Email Models
Provider-neutral inbound email and its classification
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from outreach.domain.models.support_ticket import TicketPriority


class EmailProviderTag(str, Enum):
    """Inbound webhook shapes the normalizer understands"""
    ZOHO = "zoho"
    GMAIL = "gmail"
    SENDGRID = "sendgrid"
    GENERIC = "generic"


class EmailCategory(str, Enum):
    INVESTMENT_INQUIRY = "investment_inquiry"
    PROPERTY_QUESTION = "property_question"
    TECHNICAL_SUPPORT = "technical_support"
    GENERAL_SUPPORT = "general_support"
    PARTNERSHIP = "partnership"
    COMPLAINT = "complaint"
    FEATURE_REQUEST = "feature_request"


class EmailSentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    URGENT = "urgent"


class CanonicalEmail(BaseModel):
    """Inbound email after normalization. Addresses are bare and lower-cased."""
    from_address: str
    to_address: str
    subject: str = ""
    body: str
    timestamp: datetime
    message_id: Optional[str] = None
    provider: str = EmailProviderTag.GENERIC.value


class EmailClassification(BaseModel):
    """Result of classifying an inbound email"""
    category: EmailCategory = EmailCategory.GENERAL_SUPPORT
    priority: TicketPriority = TicketPriority.MEDIUM
    sentiment: EmailSentiment = EmailSentiment.NEUTRAL
    topics: List[str] = Field(default_factory=list)
    follow_up_actions: List[str] = Field(default_factory=list)


class InboundProcessingResult(BaseModel):
    """Outcome of one inbound webhook"""
    success: bool
    message: str
    ticket_id: Optional[str] = None
    reply_sent: bool = False
