"""
Tests for the Outcome Tracker
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from outreach.domain.interfaces.lead_repository import LeadNotFoundError
from outreach.domain.models.contact_attempt import ContactAttempt, ContactChannel, ContactOutcome
from outreach.domain.models.lead import Lead, LeadStatus
from outreach.domain.services.lead_locks import LeadLockRegistry
from outreach.domain.services.outcome_tracker import OutcomeTracker

FIXED_NOW = datetime(2024, 6, 5, 16, 0, tzinfo=timezone.utc)


def _attempt(lead_id, outcome, created_at, channel=ContactChannel.VOICE, duration=None):
    tracker = OutcomeTracker()
    return tracker.build_attempt(lead_id, channel, outcome, created_at, duration_seconds=duration)


class TestFollowUpTable:
    """Tests for follow-up timing"""

    @pytest.mark.parametrize("outcome,days", [
        (ContactOutcome.CONNECTED, 7),
        (ContactOutcome.VOICEMAIL, 3),
        (ContactOutcome.NO_ANSWER, 1),
        (ContactOutcome.BUSY, 1),
        (ContactOutcome.INTERESTED, 3),
        (ContactOutcome.CALLBACK_REQUESTED, 7),
    ])
    def test_follow_up_delays(self, outcome, days):
        """Each non-terminal outcome has a fixed delay"""
        assert OutcomeTracker().follow_up_at(outcome, FIXED_NOW) == FIXED_NOW + timedelta(days=days)

    @pytest.mark.parametrize("outcome", [ContactOutcome.DISCONNECTED, ContactOutcome.NOT_INTERESTED])
    def test_terminal_outcomes_have_no_follow_up(self, outcome):
        """Disconnected and not interested stop follow-ups"""
        assert OutcomeTracker().follow_up_at(outcome, FIXED_NOW) is None

    def test_incomplete_table_rejected(self):
        """Every non-terminal outcome needs a delay"""
        with pytest.raises(ValueError):
            OutcomeTracker(follow_up_days={"connected": 7})

    def test_status_mapping_is_total(self):
        """Every outcome maps to a lead status"""
        for outcome in ContactOutcome:
            assert isinstance(OutcomeTracker.lead_status_for(outcome), LeadStatus)

    def test_status_mapping(self):
        """Interest warms a lead, refusal is terminal"""
        assert OutcomeTracker.lead_status_for(ContactOutcome.INTERESTED) == LeadStatus.WARM
        assert OutcomeTracker.lead_status_for(ContactOutcome.CALLBACK_REQUESTED) == LeadStatus.WARM
        assert OutcomeTracker.lead_status_for(ContactOutcome.NOT_INTERESTED) == LeadStatus.NOT_INTERESTED
        assert OutcomeTracker.lead_status_for(ContactOutcome.NO_ANSWER) == LeadStatus.CONTACTED


class TestRecord:
    """Tests for recording attempts"""

    @pytest.mark.asyncio
    async def test_record_appends_and_updates_lead(self, repository, clock):
        """record stores the attempt and moves the lead"""
        tracker = OutcomeTracker(repository=repository, clock=clock)
        lead = await repository.upsert(Lead(email="a@example.com", status=LeadStatus.HOT))

        attempt, updated = await tracker.record(lead.id, ContactChannel.VOICE, ContactOutcome.INTERESTED)

        assert attempt.follow_up_at == clock.now() + timedelta(days=3)
        assert updated.status == LeadStatus.WARM
        assert updated.last_contact_at == clock.now()
        assert await repository.list_contact_attempts(lead.id) == [attempt]

    @pytest.mark.asyncio
    async def test_unknown_lead_writes_nothing(self, repository, clock):
        """A missing lead raises and leaves the store untouched"""
        tracker = OutcomeTracker(repository=repository, clock=clock)

        with pytest.raises(LeadNotFoundError):
            await tracker.record("missing", ContactChannel.EMAIL, ContactOutcome.CONNECTED)

        assert repository.attempts == []

    def test_attempts_are_frozen(self):
        """Contact attempts cannot be edited"""
        attempt = _attempt("lead-1", ContactOutcome.CONNECTED, FIXED_NOW)
        with pytest.raises(Exception):
            attempt.outcome = ContactOutcome.BUSY


class TestFollowUpsAndStats:
    """Tests for due follow-ups and call stats"""

    def test_due_follow_ups_use_latest_attempt(self):
        """Only the most recent attempt per lead counts"""
        tracker = OutcomeTracker()
        attempts = [
            _attempt("lead-1", ContactOutcome.NO_ANSWER, FIXED_NOW - timedelta(days=5)),
            _attempt("lead-1", ContactOutcome.NOT_INTERESTED, FIXED_NOW - timedelta(days=4)),
            _attempt("lead-2", ContactOutcome.NO_ANSWER, FIXED_NOW - timedelta(days=2)),
            _attempt("lead-3", ContactOutcome.CONNECTED, FIXED_NOW - timedelta(days=1)),
        ]

        reminders = tracker.due_follow_ups(attempts, FIXED_NOW)

        assert [r.lead_id for r in reminders] == ["lead-2"]
        assert reminders[0].days_past == 1
        assert reminders[0].suggested_action == "Attempt another call at a different time"

    def test_call_stats(self):
        """Stats cover voice attempts only"""
        tracker = OutcomeTracker()
        attempts = [
            _attempt("lead-1", ContactOutcome.CONNECTED, FIXED_NOW, duration=120),
            _attempt("lead-2", ContactOutcome.NO_ANSWER, FIXED_NOW, duration=0),
            _attempt("lead-3", ContactOutcome.INTERESTED, FIXED_NOW, duration=60),
            _attempt("lead-4", ContactOutcome.VOICEMAIL, FIXED_NOW, duration=30),
            _attempt("lead-5", ContactOutcome.CONNECTED, FIXED_NOW, channel=ContactChannel.EMAIL),
        ]

        stats = tracker.call_stats(attempts)

        assert stats.total == 4
        assert stats.by_outcome == {"connected": 1, "no_answer": 1, "interested": 1, "voicemail": 1}
        assert stats.average_duration == 70.0
        assert stats.conversion_rate == 50.0

    def test_call_stats_empty(self):
        """No calls gives zeroed stats"""
        stats = OutcomeTracker().call_stats([])
        assert stats.total == 0
        assert stats.conversion_rate == 0.0

    def test_attempt_type(self):
        """build_attempt returns a ContactAttempt with the derived follow-up"""
        attempt = _attempt("lead-1", ContactOutcome.BUSY, FIXED_NOW)
        assert isinstance(attempt, ContactAttempt)
        assert attempt.follow_up_at == FIXED_NOW + timedelta(days=1)


class TestLeadLockRegistry:
    """Tests for per-lead locks"""

    @pytest.mark.asyncio
    async def test_one_lock_per_lead(self):
        """The same id shares a lock; other ids are independent"""
        locks = LeadLockRegistry()

        async with locks.lock("lead-1"):
            assert locks.is_locked("lead-1")
            assert not locks.is_locked("lead-2")

        assert not locks.is_locked("lead-1")

    @pytest.mark.asyncio
    async def test_waiters_serialize_and_idle_locks_are_dropped(self):
        """A second task waits for the holder; the lock is dropped once both are done"""
        locks = LeadLockRegistry()
        release = asyncio.Event()
        order = []

        async def hold(name):
            async with locks.lock("lead-1"):
                order.append(name)
                await release.wait()

        first = asyncio.create_task(hold("first"))
        await asyncio.sleep(0)
        second = asyncio.create_task(hold("second"))
        await asyncio.sleep(0)

        assert order == ["first"]
        assert locks.is_locked("lead-1")
        assert len(locks) == 1

        release.set()
        await asyncio.gather(first, second)

        assert order == ["first", "second"]
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_released_lock_is_dropped(self):
        """Ids that nobody holds leave nothing behind"""
        locks = LeadLockRegistry()

        for lead_id in ("lead-1", "lead-2", "consent:jane@example.com"):
            async with locks.lock(lead_id):
                assert len(locks) == 1

        assert len(locks) == 0
