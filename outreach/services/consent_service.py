"""
Consent Service
Opt-in records, unsubscribe handling, compliance reporting and data retention

Consent records are keyed by email. A new opt-in replaces the previous
record; an unsubscribe clears channel flags but keeps the record as proof of
the opt-out.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from pydantic import BaseModel, Field

from outreach.core.clock import Clock, SystemClock
from outreach.core.config import ComplianceConfig
from outreach.domain.interfaces.lead_repository import LeadRepository
from outreach.domain.models.compliance import ComplianceViolation, Severity
from outreach.domain.models.consent import ConsentChannel, ConsentPreferences, ConsentRecord
from outreach.domain.services.lead_locks import LeadLockRegistry

logger = logging.getLogger(__name__)

RECENT_VIOLATION_DAYS = 30
RECENT_VIOLATION_LIMIT = 10


class ComplianceStatus(BaseModel):
    total_opt_ins: int = 0
    active_consents: int = 0
    expired_consents: int = 0
    violations: int = 0
    critical_violations: int = 0
    retention_backlog: int = 0


class RetentionItem(BaseModel):
    action: str
    item_count: int
    deadline: str
    regulation: str


class ComplianceReport(BaseModel):
    generated_at: datetime
    summary: ComplianceStatus
    recent_violations: List[ComplianceViolation] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    retention_schedule: List[RetentionItem] = Field(default_factory=list)


class RetentionCleanupResult(BaseModel):
    consents_purged: int = 0
    violations_purged: int = 0


class ConsentService:
    """
    Consent bookkeeping on top of the lead repository.

    Responsibilities:
    - Record opt-ins (full replacement per email)
    - Answer consent checks per channel, honoring the maximum consent age
    - Apply unsubscribes per channel or for all channels
    - Status / audit report and age-based retention cleanup
    """

    def __init__(
        self,
        repository: LeadRepository,
        config: Optional[ComplianceConfig] = None,
        locks: Optional[LeadLockRegistry] = None,
        clock: Optional[Clock] = None,
    ):
        self.repository = repository
        self.config = config or ComplianceConfig()
        self.locks = locks or LeadLockRegistry()
        self.clock = clock or SystemClock()

    @staticmethod
    def _lock_key(email: str) -> str:
        return f"consent:{email.strip().lower()}"

    async def record_opt_in(
        self,
        email: str,
        preferences: ConsentPreferences,
        source: str = "unknown",
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ConsentRecord:
        """Store a fresh consent record, replacing any previous one for the email."""
        now = now or self.clock.now()
        record = ConsentRecord(
            email=email,
            preferences=preferences,
            opted_in_at=now,
            source=source,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        async with self.locks.lock(self._lock_key(record.email)):
            stored = await self.repository.upsert_consent(record)

        logger.info(f"Recorded opt-in for {record.email} (source: {source})")
        return stored

    async def get_consent(self, email: str) -> Optional[ConsentRecord]:
        return await self.repository.get_consent(email)

    async def has_valid_consent(
        self,
        email: str,
        channel: ConsentChannel,
        now: Optional[datetime] = None,
    ) -> bool:
        record = await self.repository.get_consent(email)
        if record is None:
            return False
        return record.is_valid_for(channel, now or self.clock.now(), self.config.consent_max_age_days)

    async def handle_unsubscribe(
        self,
        email: str,
        channel: ConsentChannel = ConsentChannel.ALL,
    ) -> bool:
        """
        Clear marketing consent for one channel or all of them.

        Idempotent. Returns False when no consent record exists for the email.
        """
        async with self.locks.lock(self._lock_key(email)):
            record = await self.repository.get_consent(email)
            if record is None:
                logger.warning(f"Unsubscribe for unknown address {email}")
                return False

            preferences = record.preferences.model_copy()
            if channel in (ConsentChannel.EMAIL, ConsentChannel.ALL):
                preferences.email_marketing = False
            if channel in (ConsentChannel.SMS, ConsentChannel.ALL):
                preferences.sms_marketing = False
            if channel in (ConsentChannel.CALL, ConsentChannel.ALL):
                preferences.call_marketing = False

            if preferences != record.preferences:
                await self.repository.upsert_consent(record.model_copy(update={"preferences": preferences}))

        logger.info(f"Unsubscribed {record.email} from {channel.value}")
        return True

    def _retention_cutoff(self, now: datetime) -> datetime:
        return now - timedelta(days=self.config.consent_retention_days)

    async def _purgeable_consents(self, now: datetime) -> List[ConsentRecord]:
        """Consent older than the retention window whose lead had no contact inside it."""
        cutoff = self._retention_cutoff(now)
        purgeable = []
        for record in await self.repository.list_consents():
            if record.opted_in_at >= cutoff:
                continue
            lead = await self.repository.get_by_email(record.email)
            if lead is not None and lead.last_contact_at is not None and lead.last_contact_at >= cutoff:
                continue
            purgeable.append(record)
        return purgeable

    async def compliance_status(self, now: Optional[datetime] = None) -> ComplianceStatus:
        now = now or self.clock.now()
        consents = await self.repository.list_consents()
        violations = await self.repository.list_violations()

        active = sum(
            1 for c in consents
            if c.preferences.any_active and not c.is_expired(now, self.config.consent_max_age_days)
        )
        expired = sum(1 for c in consents if c.is_expired(now, self.config.consent_max_age_days))

        return ComplianceStatus(
            total_opt_ins=len(consents),
            active_consents=active,
            expired_consents=expired,
            violations=len(violations),
            critical_violations=sum(1 for v in violations if v.severity == Severity.CRITICAL),
            retention_backlog=len(await self._purgeable_consents(now)),
        )

    @staticmethod
    def recommendations(status: ComplianceStatus) -> List[str]:
        recommendations = []
        if status.critical_violations > 0:
            recommendations.append("Address critical compliance violations immediately")
        if status.violations > 10:
            recommendations.append("Review and improve compliance checking procedures")
        if status.retention_backlog > 0:
            recommendations.append("Schedule data cleanup to meet retention policies")
        if status.expired_consents > 0:
            recommendations.append("Request renewed consent from contacts whose opt-in has expired")
        recommendations.append("Quarterly audit of opt-in procedures")
        return recommendations

    async def compliance_report(self, now: Optional[datetime] = None) -> ComplianceReport:
        """Audit report: status, recent violations, recommendations, retention schedule."""
        now = now or self.clock.now()
        status = await self.compliance_status(now)

        recent = await self.repository.list_violations(since=now - timedelta(days=RECENT_VIOLATION_DAYS))

        schedule = []
        if status.retention_backlog:
            schedule.append(RetentionItem(
                action="Clean up old opt-in records",
                item_count=status.retention_backlog,
                deadline="Next weekly cadence",
                regulation="GDPR Article 17",
            ))

        return ComplianceReport(
            generated_at=now,
            summary=status,
            recent_violations=recent[:RECENT_VIOLATION_LIMIT],
            recommendations=self.recommendations(status),
            retention_schedule=schedule,
        )

    async def cleanup(self, now: Optional[datetime] = None) -> RetentionCleanupResult:
        """
        Purge stale consent records and prune old violations.

        Consent older than the retention window is removed only when the
        matching lead has had no contact inside that window. Violations
        are kept for the audit period and then deleted.
        """
        now = now or self.clock.now()
        result = RetentionCleanupResult()

        for record in await self._purgeable_consents(now):
            async with self.locks.lock(self._lock_key(record.email)):
                if await self.repository.delete_consent(record.email):
                    result.consents_purged += 1
                    logger.info(f"Purged expired consent record for {record.email}")

        violation_cutoff = now - timedelta(days=self.config.violation_retention_days)
        result.violations_purged = await self.repository.delete_violations_before(violation_cutoff)

        logger.info(
            f"Retention cleanup: {result.consents_purged} consent records, "
            f"{result.violations_purged} violations removed"
        )
        return result

