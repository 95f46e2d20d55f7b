"""
Outcome Tracker
Records contact attempts and derives follow-up timing and lead status

The follow-up table and outcome -> status mapping are the single source of
truth for contact-driven lead transitions. Both are pure; only record()
touches the repository.
"""
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from outreach.core.clock import Clock, SystemClock
from outreach.core.config import DEFAULT_FOLLOW_UP_DAYS
from outreach.domain.interfaces.lead_repository import LeadNotFoundError, LeadRepository
from outreach.domain.models.contact_attempt import (
    CONVERSION_OUTCOMES,
    TERMINAL_OUTCOMES,
    CampaignType,
    ContactAttempt,
    ContactChannel,
    ContactOutcome,
)
from outreach.domain.models.lead import Lead, LeadStatus
from outreach.domain.services.lead_locks import LeadLockRegistry

logger = logging.getLogger(__name__)


LEAD_STATUS_BY_OUTCOME: Dict[ContactOutcome, LeadStatus] = {
    ContactOutcome.CONNECTED: LeadStatus.CONTACTED,
    ContactOutcome.VOICEMAIL: LeadStatus.CONTACTED,
    ContactOutcome.NO_ANSWER: LeadStatus.CONTACTED,
    ContactOutcome.BUSY: LeadStatus.CONTACTED,
    ContactOutcome.DISCONNECTED: LeadStatus.CONTACTED,
    ContactOutcome.INTERESTED: LeadStatus.WARM,
    ContactOutcome.CALLBACK_REQUESTED: LeadStatus.WARM,
    ContactOutcome.NOT_INTERESTED: LeadStatus.NOT_INTERESTED,
}

SUGGESTED_ACTIONS: Dict[ContactOutcome, str] = {
    ContactOutcome.CONNECTED: "Follow up on previous conversation and provide additional information",
    ContactOutcome.VOICEMAIL: "Try calling again or send email follow-up",
    ContactOutcome.NO_ANSWER: "Attempt another call at a different time",
    ContactOutcome.BUSY: "Attempt another call at a different time",
    ContactOutcome.INTERESTED: "Schedule demonstration or send investment materials",
    ContactOutcome.CALLBACK_REQUESTED: "Honor callback request - high priority",
}


class FollowUpReminder(BaseModel):
    attempt_id: str
    lead_id: str
    channel: ContactChannel
    last_outcome: ContactOutcome
    follow_up_at: datetime
    days_past: int
    suggested_action: str


class CallStats(BaseModel):
    total: int = 0
    by_outcome: Dict[str, int] = Field(default_factory=dict)
    average_duration: float = 0.0
    conversion_rate: float = 0.0
    follow_ups_pending: int = 0


class OutcomeTracker:
    """
    Contact outcome state machine.

    Responsibilities:
    - follow_up_at(outcome, now) from the fixed delay table
    - lead_status_for(outcome), total over ContactOutcome
    - record(): append the attempt and update the lead under its lock
    """

    def __init__(
        self,
        repository: Optional[LeadRepository] = None,
        locks: Optional[LeadLockRegistry] = None,
        follow_up_days: Optional[Dict[str, int]] = None,
        clock: Optional[Clock] = None,
    ):
        self.repository = repository
        self.locks = locks or LeadLockRegistry()
        self.clock = clock or SystemClock()

        table = follow_up_days if follow_up_days is not None else DEFAULT_FOLLOW_UP_DAYS
        self.follow_up_days: Dict[ContactOutcome, int] = {}
        for outcome in ContactOutcome:
            if outcome in TERMINAL_OUTCOMES:
                continue
            if outcome.value not in table:
                raise ValueError(f"No follow-up delay configured for outcome '{outcome.value}'")
            self.follow_up_days[outcome] = int(table[outcome.value])

    def follow_up_at(self, outcome: ContactOutcome, now: datetime) -> Optional[datetime]:
        """now + delay[outcome], or None for terminal outcomes."""
        if outcome in TERMINAL_OUTCOMES:
            return None
        return now + timedelta(days=self.follow_up_days[outcome])

    @staticmethod
    def lead_status_for(outcome: ContactOutcome) -> LeadStatus:
        return LEAD_STATUS_BY_OUTCOME[outcome]

    def build_attempt(
        self,
        lead_id: str,
        channel: ContactChannel,
        outcome: ContactOutcome,
        now: datetime,
        campaign_type: Optional[CampaignType] = None,
        duration_seconds: Optional[int] = None,
        notes: Optional[str] = None,
        provider_ref: Optional[str] = None,
    ) -> ContactAttempt:
        return ContactAttempt(
            lead_id=lead_id,
            channel=channel,
            outcome=outcome,
            campaign_type=campaign_type,
            duration_seconds=duration_seconds,
            notes=notes,
            provider_ref=provider_ref,
            created_at=now,
            follow_up_at=self.follow_up_at(outcome, now),
        )

    def apply_to_lead(self, lead: Lead, outcome: ContactOutcome, now: datetime) -> Lead:
        return lead.model_copy(update={
            "status": self.lead_status_for(outcome),
            "last_contact_at": now,
            "updated_at": now,
        })

    async def record(
        self,
        lead_id: str,
        channel: ContactChannel,
        outcome: ContactOutcome,
        now: Optional[datetime] = None,
        campaign_type: Optional[CampaignType] = None,
        duration_seconds: Optional[int] = None,
        notes: Optional[str] = None,
        provider_ref: Optional[str] = None,
        once_per_ref: bool = False,
    ) -> Tuple[ContactAttempt, Lead]:
        """
        Persist an attempt and the resulting lead status.

        With once_per_ref, an attempt already stored for the same channel and
        provider_ref is returned unchanged and nothing is written.

        Raises:
            LeadNotFoundError: If the lead does not exist (nothing is written)
        """
        if self.repository is None:
            raise RuntimeError("OutcomeTracker.record requires a repository")

        now = now or self.clock.now()

        async with self.locks.lock(lead_id):
            lead = await self.repository.get(lead_id)
            if lead is None:
                raise LeadNotFoundError(lead_id)

            if once_per_ref and provider_ref:
                existing = await self.find_attempt(lead_id, channel, provider_ref)
                if existing is not None:
                    logger.info(f"Outcome for {channel.value} {provider_ref} already recorded, skipping")
                    return existing, lead

            attempt = self.build_attempt(
                lead_id=lead_id,
                channel=channel,
                outcome=outcome,
                now=now,
                campaign_type=campaign_type,
                duration_seconds=duration_seconds,
                notes=notes,
                provider_ref=provider_ref,
            )
            await self.repository.append_contact_attempt(attempt)
            updated = await self.repository.upsert(self.apply_to_lead(lead, outcome, now))

        logger.info(f"Recorded {channel.value} outcome for lead {lead_id}: {outcome.value}")
        return attempt, updated

    async def find_attempt(
        self, lead_id: str, channel: ContactChannel, provider_ref: str
    ) -> Optional[ContactAttempt]:
        for attempt in await self.repository.list_contact_attempts(lead_id=lead_id):
            if attempt.channel == channel and attempt.provider_ref == provider_ref:
                return attempt
        return None

    def due_follow_ups(self, attempts: List[ContactAttempt], now: datetime) -> List[FollowUpReminder]:
        """Latest attempt per lead whose follow-up time has passed."""
        latest: Dict[str, ContactAttempt] = {}
        for attempt in attempts:
            current = latest.get(attempt.lead_id)
            if current is None or attempt.created_at >= current.created_at:
                latest[attempt.lead_id] = attempt

        reminders = []
        for attempt in latest.values():
            if attempt.follow_up_at is None or attempt.follow_up_at > now:
                continue
            reminders.append(FollowUpReminder(
                attempt_id=attempt.id,
                lead_id=attempt.lead_id,
                channel=attempt.channel,
                last_outcome=attempt.outcome,
                follow_up_at=attempt.follow_up_at,
                days_past=(now - attempt.follow_up_at).days,
                suggested_action=SUGGESTED_ACTIONS.get(attempt.outcome, "General follow-up call"),
            ))

        reminders.sort(key=lambda r: r.follow_up_at)
        return reminders

    def call_stats(self, attempts: List[ContactAttempt], now: Optional[datetime] = None) -> CallStats:
        """Totals over voice attempts: by outcome, average duration and conversion rate (percent)."""
        calls = [a for a in attempts if a.channel == ContactChannel.VOICE]
        if not calls:
            return CallStats()

        by_outcome = Counter(a.outcome.value for a in calls)
        durations = [a.duration_seconds for a in calls if a.duration_seconds]
        average_duration = sum(durations) / len(durations) if durations else 0.0
        converted = sum(1 for a in calls if a.outcome in CONVERSION_OUTCOMES)

        pending = 0
        if now is not None:
            pending = len(self.due_follow_ups(calls, now))

        return CallStats(
            total=len(calls),
            by_outcome=dict(by_outcome),
            average_duration=round(average_duration, 1),
            conversion_rate=round(converted / len(calls) * 100, 1),
            follow_ups_pending=pending,
        )
