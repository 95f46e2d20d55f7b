"""
Tests for the Orchestration Scheduler
"""
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock

from outreach.domain.models.consent import ConsentPreferences
from outreach.domain.models.contact_attempt import ContactChannel, ContactOutcome
from outreach.domain.models.dispatch import EmailEvent, EmailEventType
from outreach.domain.models.lead import Lead, LeadStatus
from outreach.domain.models.support_ticket import SupportTicket, TicketPriority, TicketStatus
from outreach.workers.orchestration_scheduler import (
    DAILY_AFTERNOON,
    DAILY_MORNING,
    WEEKLY,
    OrchestrationScheduler,
)

# Wednesday 09:00 in Los Angeles
FIXED_NOW = datetime(2024, 6, 5, 16, 0, tzinfo=timezone.utc)


async def _seed_leads(engine, repository):
    """One lead per bucket, all opted in to email."""
    created = FIXED_NOW - timedelta(days=1)
    hot = await repository.upsert(Lead(
        email="hot@example.com", company="Acme", phone="+15550001111", created_at=created,
    ))
    warm = await repository.upsert(Lead(email="warm@example.com", company="Beta LLC", created_at=created))
    cold = await repository.upsert(Lead(email="cold@example.com", created_at=created))
    for lead in (hot, warm, cold):
        await engine.consent.record_opt_in(lead.email, ConsentPreferences(email_marketing=True))
    return hot, warm, cold


@pytest.fixture
def scheduler(engine):
    return OrchestrationScheduler(engine)


class TestDailyMorning:
    """Tests for the morning cadence"""

    @pytest.mark.asyncio
    async def test_scores_and_emails_crossed_leads(self, scheduler, engine, repository, email_provider):
        """Leads crossing into warm or hot get the investment campaign"""
        hot, warm, cold = await _seed_leads(engine, repository)

        result = await scheduler.run_daily_morning()

        assert result.success
        assert result.period == "2024-06-05"
        assert result.steps["score_leads"].detail["scored"] == 3
        assert result.steps["score_leads"].detail["crossed"] == 2
        assert result.steps["email_campaign"].detail["sent"] == 2
        assert sorted(e.to for e in email_provider.sent) == ["hot@example.com", "warm@example.com"]
        assert result.steps["call_scripts"].detail["lead_ids"] == [hot.id]
        assert (await repository.get(cold.id)).status == LeadStatus.COLD
        assert (await repository.get(hot.id)).status == LeadStatus.CONTACTED

    @pytest.mark.asyncio
    async def test_rerun_same_day_is_idempotent(self, scheduler, engine, repository, email_provider):
        """A second morning run scores nothing and sends nothing"""
        await _seed_leads(engine, repository)
        await scheduler.run_daily_morning()

        second = await scheduler.run_daily_morning(FIXED_NOW + timedelta(hours=1))

        assert second.steps["score_leads"].detail["scored"] == 0
        assert second.steps["email_campaign"].detail["targeted"] == 0
        assert len(email_provider.sent) == 2

    @pytest.mark.asyncio
    async def test_step_failure_is_isolated(self, scheduler, engine, repository):
        """A failing step is recorded and later steps still run"""
        hot, _, _ = await _seed_leads(engine, repository)
        engine.email.send_campaign = AsyncMock(side_effect=RuntimeError("smtp exploded"))

        result = await scheduler.run_daily_morning()

        assert not result.success
        assert result.failed_steps == ["email_campaign"]
        assert result.steps["email_campaign"].error == "smtp exploded"
        assert result.steps["call_scripts"].success
        assert result.steps["escalate_tickets"].success
        assert (await repository.get(hot.id)).status == LeadStatus.HOT

    @pytest.mark.asyncio
    async def test_running_cadence_is_skipped(self, scheduler):
        """A trigger during a run of the same cadence is skipped"""
        async with scheduler._locks[DAILY_MORNING]:
            assert scheduler.is_running(DAILY_MORNING)
            result = await scheduler.run_daily_morning()

        assert result.skipped
        assert not result.success
        assert result.steps == {}

    @pytest.mark.asyncio
    async def test_auto_dial_hot_leads(self, scheduler, engine, repository, voice_provider, config):
        """Auto-dial calls hot leads not contacted today"""
        config.dispatch.auto_dial_hot_leads = True
        lead = await repository.upsert(Lead(
            email="hot@example.com",
            phone="+15550001111",
            status=LeadStatus.HOT,
            score=85,
            scored_at=FIXED_NOW - timedelta(days=1),
        ))
        await engine.consent.record_opt_in(lead.email, ConsentPreferences(call_marketing=True))

        result = await scheduler.run_daily_morning()

        assert result.steps["call_scripts"].detail["calls_placed"] == 1
        assert voice_provider.calls[0]["to"] == "+15550001111"

    @pytest.mark.asyncio
    async def test_review_and_escalate_tickets(self, scheduler, repository):
        """Keyword review raises priority; old or urgent tickets are escalated once"""
        old = await repository.upsert_ticket(SupportTicket(
            email="a@example.com", subject="Hello", body="Checking in",
            created_at=FIXED_NOW - timedelta(hours=72),
        ))
        urgent = await repository.upsert_ticket(SupportTicket(
            email="b@example.com", subject="URGENT", body="Account locked",
            priority=TicketPriority.LOW, created_at=FIXED_NOW - timedelta(hours=1),
        ))
        recent = await repository.upsert_ticket(SupportTicket(
            email="c@example.com", subject="A question", body="About distributions",
            priority=TicketPriority.HIGH, created_at=FIXED_NOW - timedelta(hours=1),
        ))

        result = await scheduler.run_daily_morning()

        assert result.steps["review_tickets"].detail == {"reviewed": 3, "raised": 1}
        assert set(result.steps["escalate_tickets"].detail["ticket_ids"]) == {old.id, urgent.id}
        assert (await repository.get_ticket(old.id)).status == TicketStatus.IN_PROGRESS
        assert (await repository.get_ticket(urgent.id)).priority == TicketPriority.URGENT
        assert (await repository.get_ticket(recent.id)).priority == TicketPriority.HIGH
        assert (await repository.get_ticket(recent.id)).escalated_at is None

        second = await scheduler.run_daily_morning(FIXED_NOW + timedelta(hours=1))
        assert second.steps["escalate_tickets"].detail["escalated"] == 0


class TestDailyAfternoon:
    """Tests for the afternoon cadence"""

    @pytest.mark.asyncio
    async def test_afternoon_steps(self, scheduler, engine, repository):
        """Hot lead review, today's metrics and ticket closing"""
        hot = await repository.upsert(Lead(email="hot@example.com", status=LeadStatus.HOT, score=90))
        emailed = await repository.upsert(Lead(email="e@example.com"))
        await engine.outcome_tracker.record(emailed.id, ContactChannel.EMAIL, ContactOutcome.CONNECTED)
        await repository.append_email_event(EmailEvent(
            provider_ref="<msg-1@test>", event=EmailEventType.OPEN, created_at=FIXED_NOW,
        ))
        resolved = await repository.upsert_ticket(SupportTicket(
            email="a@example.com", status=TicketStatus.RESOLVED, resolved_at=FIXED_NOW - timedelta(hours=2),
        ))

        result = await scheduler.run_daily_afternoon(FIXED_NOW + timedelta(hours=5))

        assert result.success
        assert result.steps["review_hot_leads"].detail["needs_attention"] == [hot.id]
        metrics = result.steps["campaign_metrics"].detail
        assert metrics["sent"] == 1
        assert metrics["opened"] == 1
        assert metrics["open_rate"] == 1.0
        assert result.steps["close_resolved_tickets"].detail == {"closed": 1}
        assert (await repository.get_ticket(resolved.id)).status == TicketStatus.CLOSED


class TestWeekly:
    """Tests for the weekly cadence"""

    @pytest.mark.asyncio
    async def test_weekly_report_sent_once(self, scheduler, engine, repository, email_provider):
        """Running the weekly cadence twice yields the same report and one email"""
        await _seed_leads(engine, repository)

        first = await scheduler.run_weekly()
        report = await repository.get_report("2024-W23")
        second = await scheduler.run_weekly(FIXED_NOW + timedelta(hours=2))
        again = await repository.get_report("2024-W23")

        assert first.success and second.success
        assert first.period == second.period == "2024-W23"
        assert first.steps["weekly_report"].detail["dispatched_now"]
        assert second.steps["weekly_report"].detail["already_dispatched"]
        assert report.same_counts(again)
        assert again.dispatched
        assert again.leads_total == 3
        assert [e.to for e in email_provider.sent] == ["ops@commertize.com"]

    @pytest.mark.asyncio
    async def test_weekly_report_includes_call_stats(self, scheduler, engine, repository, email_provider):
        """Call conversion and duration for the week reach the step detail and the email"""
        hot, warm, _ = await _seed_leads(engine, repository)
        earlier = FIXED_NOW - timedelta(hours=1)
        await engine.outcome_tracker.record(
            hot.id, ContactChannel.VOICE, ContactOutcome.INTERESTED, now=earlier, duration_seconds=120,
        )
        await engine.outcome_tracker.record(warm.id, ContactChannel.VOICE, ContactOutcome.NO_ANSWER, now=earlier)

        result = await scheduler.run_weekly()

        detail = result.steps["weekly_report"].detail
        assert detail["calls_total"] == 2
        assert detail["call_conversion_rate"] == 50.0
        assert "50.0% converted, 120.0s average" in email_provider.sent[0].html

    @pytest.mark.asyncio
    async def test_archive_stale_records(self, scheduler, repository):
        """Old cold leads and long-closed tickets are archived"""
        stale = await repository.upsert(Lead(
            email="stale@example.com", status=LeadStatus.COLD, created_at=FIXED_NOW - timedelta(days=120),
        ))
        fresh = await repository.upsert(Lead(
            email="fresh@example.com", status=LeadStatus.COLD, created_at=FIXED_NOW - timedelta(days=10),
        ))
        closed = await repository.upsert_ticket(SupportTicket(
            email="a@example.com", status=TicketStatus.CLOSED, closed_at=FIXED_NOW - timedelta(days=40),
        ))

        result = await scheduler.run_weekly()

        assert result.steps["archive_stale_records"].detail == {"leads_archived": 1, "tickets_archived": 1}
        assert (await repository.get(stale.id)).archived
        assert not (await repository.get(fresh.id)).archived
        assert (await repository.get_ticket(closed.id)).archived


class TestSchedulerWiring:
    """Tests for cadence lookup and APScheduler registration"""

    @pytest.mark.asyncio
    async def test_run_cadence_by_name(self, scheduler):
        """Cadences can be run by name"""
        result = await scheduler.run_cadence(DAILY_AFTERNOON)
        assert result.cadence == DAILY_AFTERNOON
        assert scheduler.last_results[DAILY_AFTERNOON] is result

    @pytest.mark.asyncio
    async def test_unknown_cadence(self, scheduler):
        """Unknown names raise ValueError"""
        with pytest.raises(ValueError):
            await scheduler.run_cadence("hourly")

    @pytest.mark.asyncio
    async def test_start_registers_jobs(self, scheduler):
        """start() registers one job per cadence"""
        aps = scheduler.start()
        try:
            assert {job.id for job in aps.get_jobs()} == {DAILY_MORNING, DAILY_AFTERNOON, WEEKLY}
            assert scheduler.start() is aps
        finally:
            scheduler.shutdown()
