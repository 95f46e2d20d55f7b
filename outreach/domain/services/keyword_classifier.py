"""
Keyword Classifier
Deterministic ticket priority, category and reply rules

Used as the fallback whenever text intelligence is unavailable, and by the
morning ticket review.
"""
from typing import Dict, List, Tuple

from outreach.domain.models.inbound_email import (
    CanonicalEmail,
    EmailCategory,
    EmailClassification,
    EmailSentiment,
)
from outreach.domain.models.support_ticket import TicketPriority

URGENT_KEYWORDS = ["urgent", "immediate", "critical", "emergency"]
HIGH_KEYWORDS = ["important", "asap", "quickly", "soon"]
LOW_KEYWORDS = ["question", "demo"]

# Checked in order; first match wins
CATEGORY_KEYWORDS: List[Tuple[EmailCategory, List[str]]] = [
    (EmailCategory.COMPLAINT, ["complaint", "disappointed", "unacceptable", "refund"]),
    (EmailCategory.TECHNICAL_SUPPORT, ["error", "bug", "login", "password", "not working", "broken"]),
    (EmailCategory.PARTNERSHIP, ["partnership", "partner", "sponsor", "tokenize my", "list my property"]),
    (EmailCategory.INVESTMENT_INQUIRY, ["invest", "minimum", "returns", "distribution", "portfolio"]),
    (EmailCategory.PROPERTY_QUESTION, ["property", "building", "tenant", "lease"]),
    (EmailCategory.FEATURE_REQUEST, ["feature", "would be great if", "suggestion"]),
]

NEGATIVE_KEYWORDS = ["disappointed", "frustrated", "angry", "unacceptable", "terrible", "complaint"]
POSITIVE_KEYWORDS = ["thank", "great", "excited", "love", "appreciate"]

GENERIC_REPLY = (
    "Thank you for contacting {company_name}. We have received your message and a member "
    "of our team will respond within 24 hours."
)

CATEGORY_REPLIES: Dict[EmailCategory, str] = {
    EmailCategory.INVESTMENT_INQUIRY: (
        "Thank you for your interest in investing with {company_name}. An investment specialist "
        "will follow up with details on current opportunities within 24 hours."
    ),
    EmailCategory.PARTNERSHIP: (
        "Thank you for reaching out about a partnership with {company_name}. Our partnerships "
        "team will contact you within 24 hours to learn more about your properties."
    ),
    EmailCategory.TECHNICAL_SUPPORT: (
        "Thank you for reporting this. Our support team is looking into it and will get back "
        "to you within 24 hours."
    ),
}


def keyword_priority(subject: str, body: str) -> TicketPriority:
    content = f"{subject} {body}".lower()
    if any(keyword in content for keyword in URGENT_KEYWORDS):
        return TicketPriority.URGENT
    if any(keyword in content for keyword in HIGH_KEYWORDS):
        return TicketPriority.HIGH
    if any(keyword in content for keyword in LOW_KEYWORDS):
        return TicketPriority.LOW
    return TicketPriority.MEDIUM


def keyword_category(subject: str, body: str) -> EmailCategory:
    content = f"{subject} {body}".lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in content for keyword in keywords):
            return category
    return EmailCategory.GENERAL_SUPPORT


def keyword_sentiment(subject: str, body: str, priority: TicketPriority) -> EmailSentiment:
    if priority == TicketPriority.URGENT:
        return EmailSentiment.URGENT
    content = f"{subject} {body}".lower()
    if any(keyword in content for keyword in NEGATIVE_KEYWORDS):
        return EmailSentiment.NEGATIVE
    if any(keyword in content for keyword in POSITIVE_KEYWORDS):
        return EmailSentiment.POSITIVE
    return EmailSentiment.NEUTRAL


def classify_email(email: CanonicalEmail) -> EmailClassification:
    priority = keyword_priority(email.subject, email.body)
    return EmailClassification(
        category=keyword_category(email.subject, email.body),
        priority=priority,
        sentiment=keyword_sentiment(email.subject, email.body, priority),
        follow_up_actions=["Manual review required"],
    )


def fallback_reply(classification: EmailClassification, company_name: str) -> str:
    template = CATEGORY_REPLIES.get(classification.category, GENERIC_REPLY)
    return template.format(company_name=company_name)
