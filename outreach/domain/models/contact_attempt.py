"""
Contact Attempt Model
Immutable record of one outreach action and its outcome
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ContactChannel(str, Enum):
    """Channel an outreach action went through"""
    EMAIL = "email"
    VOICE = "voice"


class ContactOutcome(str, Enum):
    """Outcome of a contact attempt"""
    CONNECTED = "connected"
    VOICEMAIL = "voicemail"
    NO_ANSWER = "no_answer"
    BUSY = "busy"
    DISCONNECTED = "disconnected"
    INTERESTED = "interested"
    NOT_INTERESTED = "not_interested"
    CALLBACK_REQUESTED = "callback_requested"


class CampaignType(str, Enum):
    """Named outreach campaigns (email templates and call personas)"""
    INVESTMENT = "investment"
    PARTNERSHIP = "partnership"
    DEMO = "demo"


# Outcomes after which no automatic follow-up is scheduled
TERMINAL_OUTCOMES = {ContactOutcome.DISCONNECTED, ContactOutcome.NOT_INTERESTED}

# Outcomes counted as a successful conversation in call stats
CONVERSION_OUTCOMES = {ContactOutcome.CONNECTED, ContactOutcome.INTERESTED}


class ContactAttempt(BaseModel):
    """
    One outreach action.

    Frozen once created; follow_up_at is derived from (channel, outcome) by
    the outcome tracker and never edited.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    lead_id: str
    channel: ContactChannel
    outcome: ContactOutcome
    campaign_type: Optional[CampaignType] = None
    duration_seconds: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = None
    provider_ref: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    follow_up_at: Optional[datetime] = None
