"""
Compliance Gate
Validates outbound messages against regulatory rules before dispatch

Rules are predicates over an OutboundMessage snapshot. The gate never
mutates the message and never persists; callers persist the returned
violations and block on any critical one.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, FrozenSet, List, Optional

from outreach.core.config import ComplianceConfig
from outreach.domain.models.compliance import ComplianceViolation, Regulation, Severity
from outreach.domain.models.consent import ConsentChannel
from outreach.domain.models.contact_attempt import ContactChannel
from outreach.domain.models.dispatch import OutboundMessage

logger = logging.getLogger(__name__)

_LINK_PATTERN = re.compile(r"https?://|mailto:", re.IGNORECASE)


@dataclass
class ComplianceRule:
    """
    One registered rule.

    `check` returns True when the message complies.
    """
    id: str
    regulation: Regulation
    description: str
    severity: Severity
    check: Callable[[OutboundMessage, datetime], bool]
    channels: FrozenSet[ContactChannel] = field(
        default_factory=lambda: frozenset({ContactChannel.EMAIL, ContactChannel.VOICE})
    )
    marketing_only: bool = False

    def applies_to(self, message: OutboundMessage) -> bool:
        if message.channel not in self.channels:
            return False
        if self.marketing_only and not message.is_marketing:
            return False
        return True


def is_blocking(violations: List[ComplianceViolation]) -> bool:
    """True iff any violation is critical."""
    return any(v.severity == Severity.CRITICAL for v in violations)


class ComplianceGate:
    """
    Rule registry and validator.

    Built-in rules:
    - GDPR_EMAIL_CONSENT: marketing email needs unexpired email consent
    - TCPA_CALL_CONSENT: outbound calls need unexpired call consent
    - CAN_SPAM_UNSUBSCRIBE: every email carries an unsubscribe link or mailto
    - CCPA_OPT_OUT: marketing email mentions an opt-out (non-blocking)
    - SEC_NO_GUARANTEES: no guaranteed-return language on any channel
    """

    def __init__(self, config: Optional[ComplianceConfig] = None):
        self.config = config or ComplianceConfig()
        self._prohibited = [phrase.lower() for phrase in self.config.prohibited_phrases]
        self._rules: List[ComplianceRule] = []
        self._register_defaults()

    @property
    def rules(self) -> List[ComplianceRule]:
        return list(self._rules)

    def register(self, rule: ComplianceRule) -> None:
        """Add a rule. Rule ids are unique."""
        if any(existing.id == rule.id for existing in self._rules):
            raise ValueError(f"Compliance rule already registered: {rule.id}")
        self._rules.append(rule)

    def validate(self, message: OutboundMessage, now: datetime) -> List[ComplianceViolation]:
        """Run every applicable rule and return the failures."""
        violations: List[ComplianceViolation] = []

        for rule in self._rules:
            if not rule.applies_to(message):
                continue

            if rule.check(message, now):
                continue

            violations.append(ComplianceViolation(
                rule_id=rule.id,
                regulation=rule.regulation,
                severity=rule.severity,
                message=rule.description,
                channel=message.channel.value,
                recipient=message.recipient_email or message.recipient_phone,
                payload=message.snapshot(),
                created_at=now,
            ))

        if violations:
            logger.warning(
                f"Compliance check failed for {message.recipient_email or message.recipient_phone}: "
                f"{[v.rule_id for v in violations]}"
            )
        return violations

    def is_blocking(self, violations: List[ComplianceViolation]) -> bool:
        return is_blocking(violations)

    # Rule predicates

    def _has_email_consent(self, message: OutboundMessage, now: datetime) -> bool:
        if message.consent is None:
            return False
        return message.consent.is_valid_for(ConsentChannel.EMAIL, now, self.config.consent_max_age_days)

    def _has_call_consent(self, message: OutboundMessage, now: datetime) -> bool:
        if message.consent is None:
            return False
        return message.consent.is_valid_for(ConsentChannel.CALL, now, self.config.consent_max_age_days)

    def _has_unsubscribe_link(self, message: OutboundMessage, now: datetime) -> bool:
        body = "\n".join(part for part in (message.html, message.text) if part)
        return "unsubscribe" in body.lower() and bool(_LINK_PATTERN.search(body))

    def _has_opt_out_mechanism(self, message: OutboundMessage, now: datetime) -> bool:
        body = "\n".join(part for part in (message.html, message.text) if part).lower()
        return "unsubscribe" in body or "opt-out" in body or "opt out" in body

    def _has_no_guarantees(self, message: OutboundMessage, now: datetime) -> bool:
        content = message.content.lower()
        return not any(phrase in content for phrase in self._prohibited)

    def _register_defaults(self) -> None:
        email_only = frozenset({ContactChannel.EMAIL})

        self.register(ComplianceRule(
            id="GDPR_EMAIL_CONSENT",
            regulation=Regulation.GDPR,
            description="Marketing email requires unexpired explicit consent",
            severity=Severity.CRITICAL,
            check=self._has_email_consent,
            channels=email_only,
            marketing_only=True,
        ))
        self.register(ComplianceRule(
            id="TCPA_CALL_CONSENT",
            regulation=Regulation.TCPA,
            description="Automated calls require written call consent",
            severity=Severity.CRITICAL,
            check=self._has_call_consent,
            channels=frozenset({ContactChannel.VOICE}),
        ))
        self.register(ComplianceRule(
            id="CAN_SPAM_UNSUBSCRIBE",
            regulation=Regulation.CAN_SPAM,
            description="Emails must include an unsubscribe link",
            severity=Severity.CRITICAL,
            check=self._has_unsubscribe_link,
            channels=email_only,
        ))
        self.register(ComplianceRule(
            id="CCPA_OPT_OUT",
            regulation=Regulation.CCPA,
            description="Marketing email must offer an opt-out mechanism",
            severity=Severity.ERROR,
            check=self._has_opt_out_mechanism,
            channels=email_only,
            marketing_only=True,
        ))
        self.register(ComplianceRule(
            id="SEC_NO_GUARANTEES",
            regulation=Regulation.SEC,
            description="Guaranteed-return promises are prohibited",
            severity=Severity.CRITICAL,
            check=self._has_no_guarantees,
        ))
