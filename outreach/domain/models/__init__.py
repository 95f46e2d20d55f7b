"""Domain models"""

# Lead models
from .lead import (
    LeadStatus,
    LeadSource,
    Lead,
    LeadFilter,
)

# Consent models
from .consent import (
    ConsentChannel,
    ConsentPreferences,
    ConsentRecord,
)

# Contact attempts
from .contact_attempt import (
    ContactChannel,
    ContactOutcome,
    CampaignType,
    ContactAttempt,
    TERMINAL_OUTCOMES,
    CONVERSION_OUTCOMES,
)

# Support tickets
from .support_ticket import (
    TicketStatus,
    TicketPriority,
    InvalidTicketTransition,
    SupportTicket,
)

from .compliance import (
    Severity,
    Regulation,
    ComplianceViolation,
)

# Inbound email
from .inbound_email import (
    EmailProviderTag,
    EmailCategory,
    EmailSentiment,
    CanonicalEmail,
    EmailClassification,
    InboundProcessingResult,
)

# Dispatch
from .dispatch import (
    OutboundMessage,
    OutboundEmail,
    EmailSendResult,
    DispatchResult,
    CallPlacement,
    CallCompletion,
    EmailEventType,
    EmailEvent,
)

from .report import (
    OutreachReport,
)

__all__ = [
    # Leads
    "LeadStatus",
    "LeadSource",
    "Lead",
    "LeadFilter",
    # Consent
    "ConsentChannel",
    "ConsentPreferences",
    "ConsentRecord",
    # Contact attempts
    "ContactChannel",
    "ContactOutcome",
    "CampaignType",
    "ContactAttempt",
    "TERMINAL_OUTCOMES",
    "CONVERSION_OUTCOMES",
    # Tickets
    "TicketStatus",
    "TicketPriority",
    "InvalidTicketTransition",
    "SupportTicket",
    # Compliance
    "Severity",
    "Regulation",
    "ComplianceViolation",
    # Inbound email
    "EmailProviderTag",
    "EmailCategory",
    "EmailSentiment",
    "CanonicalEmail",
    "EmailClassification",
    "InboundProcessingResult",
    # Dispatch
    "OutboundMessage",
    "OutboundEmail",
    "EmailSendResult",
    "DispatchResult",
    "CallPlacement",
    "CallCompletion",
    "EmailEventType",
    "EmailEvent",
    # Reports
    "OutreachReport",
]
