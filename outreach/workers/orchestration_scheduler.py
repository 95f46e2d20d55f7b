"""
Orchestration Scheduler
Recurring outreach cadences (daily morning, daily afternoon, weekly)

Run as separate process:
    python -m outreach.workers.orchestration_scheduler

Each cadence is a sequence of named steps. A failing step is logged and
recorded in the run result; the remaining steps still run. A cadence that
is already running is not started a second time.
"""
import asyncio
import logging
import signal
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from pydantic import BaseModel, Field

from outreach.core.clock import Clock
from outreach.domain.models.contact_attempt import CampaignType
from outreach.domain.models.lead import Lead, LeadFilter, LeadStatus
from outreach.domain.models.support_ticket import TicketPriority, TicketStatus
from outreach.domain.services.keyword_classifier import keyword_priority
from outreach.domain.services.report_builder import (
    build_weekly_report,
    campaign_metrics,
    iso_week_period,
    local_day_period,
)
from outreach.services.engine import OutreachEngine

logger = logging.getLogger(__name__)

DAILY_MORNING = "daily_morning"
DAILY_AFTERNOON = "daily_afternoon"
WEEKLY = "weekly"
CADENCES = (DAILY_MORNING, DAILY_AFTERNOON, WEEKLY)

LOW_OPEN_RATE = 0.20

_BUCKET_RANK = {LeadStatus.COLD: 0, LeadStatus.WARM: 1, LeadStatus.HOT: 2}


class StepResult(BaseModel):
    name: str
    success: bool
    detail: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class CadenceRunResult(BaseModel):
    """Outcome of one cadence run"""
    cadence: str
    period: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    steps: Dict[str, StepResult] = Field(default_factory=dict)
    skipped: bool = False

    @property
    def success(self) -> bool:
        return not self.skipped and all(step.success for step in self.steps.values())

    @property
    def failed_steps(self) -> List[str]:
        return [name for name, step in self.steps.items() if not step.success]


@dataclass
class MorningRun:
    """Leads handed from the scoring step to the outreach steps of one run."""
    crossed: List[Lead] = field(default_factory=list)
    hot: List[Lead] = field(default_factory=list)


StepFn = Callable[[], Awaitable[Dict[str, Any]]]


class OrchestrationScheduler:
    """
    Cadence runner and APScheduler wiring.

    Responsibilities:
    - Run cadence steps in order with per-step failure isolation
    - Single-flight per cadence (overlapping triggers are skipped)
    - Register cron triggers in the configured timezone
    """

    def __init__(self, engine: OutreachEngine, clock: Optional[Clock] = None):
        self.engine = engine
        self.config = engine.config
        self.repository = engine.repository
        self.clock = clock or engine.clock

        self._locks: Dict[str, asyncio.Lock] = {name: asyncio.Lock() for name in CADENCES}
        self._scheduler: Optional[AsyncIOScheduler] = None
        self.last_results: Dict[str, CadenceRunResult] = {}

    @property
    def timezone_name(self) -> str:
        return self.config.schedule.timezone

    def _local_date(self, now: datetime) -> str:
        return now.astimezone(pytz.timezone(self.timezone_name)).date().isoformat()

    def is_running(self, cadence: str) -> bool:
        return self._locks[cadence].locked()

    async def _run_cadence(
        self,
        cadence: str,
        period: str,
        now: datetime,
        steps: List[Tuple[str, StepFn]],
    ) -> CadenceRunResult:
        lock = self._locks[cadence]
        if lock.locked():
            logger.warning(f"Cadence {cadence} already running, skipping trigger for {period}")
            return CadenceRunResult(cadence=cadence, period=period, started_at=now, finished_at=now, skipped=True)

        async with lock:
            logger.info(f"Starting cadence {cadence} ({period})")
            result = CadenceRunResult(cadence=cadence, period=period, started_at=now)

            for name, step in steps:
                try:
                    detail = await step()
                    result.steps[name] = StepResult(name=name, success=True, detail=detail or {})
                except Exception as e:
                    logger.error(f"Cadence {cadence} step {name} failed: {e}", exc_info=True)
                    result.steps[name] = StepResult(name=name, success=False, error=str(e))

            result.finished_at = self.clock.now()

        self.last_results[cadence] = result
        if result.failed_steps:
            logger.warning(f"Cadence {cadence} finished with failed steps: {result.failed_steps}")
        else:
            logger.info(f"Cadence {cadence} ({period}) completed")
        return result

    # Cadences

    async def run_daily_morning(self, now: Optional[datetime] = None) -> CadenceRunResult:
        now = now or self.clock.now()
        run = MorningRun()
        return await self._run_cadence(DAILY_MORNING, self._local_date(now), now, [
            ("score_leads", lambda: self.score_leads(now, run)),
            ("email_campaign", lambda: self.email_campaign(now, run)),
            ("call_scripts", lambda: self.call_scripts(now, run)),
            ("review_tickets", lambda: self.review_tickets(now)),
            ("escalate_tickets", lambda: self.escalate_tickets(now)),
        ])

    async def run_daily_afternoon(self, now: Optional[datetime] = None) -> CadenceRunResult:
        now = now or self.clock.now()
        return await self._run_cadence(DAILY_AFTERNOON, self._local_date(now), now, [
            ("review_hot_leads", lambda: self.review_hot_leads(now)),
            ("campaign_metrics", lambda: self.campaign_metrics(now)),
            ("close_resolved_tickets", lambda: self.close_resolved_tickets(now)),
        ])

    async def run_weekly(self, now: Optional[datetime] = None) -> CadenceRunResult:
        now = now or self.clock.now()
        period, _, _ = iso_week_period(now, self.timezone_name)
        return await self._run_cadence(WEEKLY, period, now, [
            ("weekly_report", lambda: self.weekly_report(now)),
            ("retention_cleanup", lambda: self.retention_cleanup(now)),
            ("archive_stale_records", lambda: self.archive_stale_records(now)),
        ])

    async def run_cadence(self, cadence: str, now: Optional[datetime] = None) -> CadenceRunResult:
        runners = {
            DAILY_MORNING: self.run_daily_morning,
            DAILY_AFTERNOON: self.run_daily_afternoon,
            WEEKLY: self.run_weekly,
        }
        if cadence not in runners:
            raise ValueError(f"Unknown cadence: {cadence}. Available: {', '.join(CADENCES)}")
        return await runners[cadence](now)

    # Morning steps

    def _crossed_threshold(self, before: Lead, after: Lead) -> bool:
        """True when the score bucket moved up into warm or hot in this pass."""
        if after.status not in (LeadStatus.WARM, LeadStatus.HOT):
            return False
        if before.scored_at is None:
            return True
        previous = self.engine.scoring.status_for(before.score)
        return _BUCKET_RANK[previous] < _BUCKET_RANK[after.status]

    async def score_leads(self, now: datetime, run: MorningRun) -> Dict[str, Any]:
        """Score leads that are unscored or were contacted since their last score."""
        scoring = self.engine.scoring
        day_start, _ = local_day_period(now, self.timezone_name)
        candidates = [
            lead for lead in await self.repository.list(LeadFilter())
            if scoring.needs_scoring(lead, day_start)
        ]

        scored = failed = 0
        for lead in candidates:
            try:
                result = await scoring.score_lead(lead, now)
                async with self.engine.locks.lock(lead.id):
                    current = await self.repository.get(lead.id)
                    if current is None or not scoring.needs_scoring(current, day_start):
                        continue
                    updated = await self.repository.upsert(scoring.apply(current, result, now))
            except Exception as e:
                failed += 1
                logger.warning(f"Failed to score lead {lead.id}: {e}")
                continue

            scored += 1
            if self._crossed_threshold(current, updated):
                run.crossed.append(updated)
            if updated.status == LeadStatus.HOT:
                run.hot.append(updated)

        logger.info(f"Scored {scored} leads ({len(run.crossed)} crossed into warm/hot, {failed} failed)")
        return {"candidates": len(candidates), "scored": scored, "crossed": len(run.crossed), "failed": failed}

    async def email_campaign(self, now: datetime, run: MorningRun) -> Dict[str, Any]:
        """Investment campaign to leads that crossed into warm/hot in this run."""
        targets = sorted(run.crossed, key=lambda lead: -lead.score)[:self.config.dispatch.campaign_batch_size]
        if not targets:
            return {"targeted": 0, "sent": 0, "blocked": 0, "failed": 0}

        results = await self.engine.email.send_campaign(targets, CampaignType.INVESTMENT)
        sent = sum(1 for r in results if r.success)
        blocked = sum(1 for r in results if r.blocked)
        return {"targeted": len(targets), "sent": sent, "blocked": blocked, "failed": len(results) - sent - blocked}

    async def call_scripts(self, now: datetime, run: MorningRun) -> Dict[str, Any]:
        """Call scripts for the top hot leads with a phone number; optionally dial them."""
        candidates: Dict[str, Lead] = {
            lead.id: lead for lead in await self.repository.list(LeadFilter(statuses=[LeadStatus.HOT], has_phone=True))
        }
        for lead in run.hot:
            if lead.has_phone:
                candidates.setdefault(lead.id, lead)

        top = sorted(candidates.values(), key=lambda lead: -lead.score)[:self.config.dispatch.call_script_top_n]
        scripts = self.engine.voice.generate_scripts(top, CampaignType.INVESTMENT)
        detail: Dict[str, Any] = {"scripts": len(scripts), "lead_ids": [lead.id for lead in top], "calls_placed": 0}

        if self.config.dispatch.auto_dial_hot_leads and top:
            day_start, _ = local_day_period(now, self.timezone_name)
            to_dial = []
            for lead in top:
                current = await self.repository.get(lead.id)
                if current is not None and (current.last_contact_at is None or current.last_contact_at < day_start):
                    to_dial.append(current)
            results = await self.engine.voice.call_batch(to_dial, CampaignType.INVESTMENT)
            detail["calls_placed"] = sum(1 for r in results if r.success)

        return detail

    async def review_tickets(self, now: datetime) -> Dict[str, Any]:
        """Raise ticket priority from keywords; priority is never lowered."""
        tickets = await self.repository.list_tickets(statuses=[TicketStatus.OPEN, TicketStatus.IN_PROGRESS])
        raised = 0
        for ticket in tickets:
            updated = ticket.raise_priority(keyword_priority(ticket.subject, ticket.body), now)
            if updated is not ticket:
                await self.repository.upsert_ticket(updated)
                raised += 1
        return {"reviewed": len(tickets), "raised": raised}

    async def escalate_tickets(self, now: datetime) -> Dict[str, Any]:
        """Escalate active tickets that are old or urgent and not yet escalated."""
        threshold = now - timedelta(hours=self.config.tickets.escalation_age_hours)
        escalated = []

        for ticket in await self.repository.list_tickets(statuses=[TicketStatus.OPEN, TicketStatus.IN_PROGRESS]):
            if ticket.escalated_at is not None:
                continue
            if ticket.created_at > threshold and ticket.priority != TicketPriority.URGENT:
                continue

            updated = ticket.model_copy(update={"escalated_at": now, "updated_at": now})
            if updated.status == TicketStatus.OPEN:
                updated = updated.advance(TicketStatus.IN_PROGRESS, now)
            await self.repository.upsert_ticket(updated)
            escalated.append(ticket.id)
            logger.warning(f"Escalated ticket {ticket.id} ({ticket.priority.value}, opened {ticket.created_at})")

        return {"escalated": len(escalated), "ticket_ids": escalated}

    # Afternoon steps

    async def review_hot_leads(self, now: datetime) -> Dict[str, Any]:
        """Hot leads without contact in the last day, plus due follow-ups."""
        stale_after = timedelta(hours=self.config.leads.hot_lead_stale_hours)
        hot = await self.repository.list(LeadFilter(statuses=[LeadStatus.HOT]))
        needs_attention = [
            lead.id for lead in hot
            if lead.last_contact_at is None or now - lead.last_contact_at > stale_after
        ]

        reminders = self.engine.outcome_tracker.due_follow_ups(
            await self.repository.list_contact_attempts(), now
        )
        for reminder in reminders:
            logger.info(f"Follow-up due for lead {reminder.lead_id}: {reminder.suggested_action}")

        if needs_attention:
            logger.warning(f"{len(needs_attention)} hot leads need attention")
        return {
            "hot_leads": len(hot),
            "needs_attention": needs_attention,
            "follow_ups_due": len(reminders),
        }

    async def campaign_metrics(self, now: datetime) -> Dict[str, Any]:
        """Today's email sends and engagement."""
        start, end = local_day_period(now, self.timezone_name)
        metrics = campaign_metrics(
            await self.repository.list_contact_attempts(since=start),
            await self.repository.list_email_events(since=start),
            start,
            end,
        )
        if metrics.sent and metrics.open_rate < LOW_OPEN_RATE:
            logger.warning(f"Low email open rate today: {metrics.open_rate:.0%} of {metrics.sent} sends")

        detail = metrics.model_dump()
        detail.update({"open_rate": round(metrics.open_rate, 4), "click_rate": round(metrics.click_rate, 4)})
        return detail

    async def close_resolved_tickets(self, now: datetime) -> Dict[str, Any]:
        resolved = await self.repository.list_tickets(statuses=[TicketStatus.RESOLVED])
        for ticket in resolved:
            await self.repository.upsert_ticket(ticket.advance(TicketStatus.CLOSED, now))
        if resolved:
            logger.info(f"Closed {len(resolved)} resolved tickets")
        return {"closed": len(resolved)}

    # Weekly steps

    async def weekly_report(self, now: datetime) -> Dict[str, Any]:
        """
        Build and store the report for the current ISO week.

        Recomputing the same week overwrites the counts; the report is
        emailed once.
        """
        period, start, end = iso_week_period(now, self.timezone_name)
        attempts = [a for a in await self.repository.list_contact_attempts(since=start) if a.created_at < end]

        report = build_weekly_report(
            period,
            start,
            end,
            leads=await self.repository.list(LeadFilter(include_archived=True)),
            attempts=attempts,
            events=await self.repository.list_email_events(since=start),
            tickets=await self.repository.list_tickets(include_archived=True),
            now=now,
        )

        existing = await self.repository.get_report(period)
        already_dispatched = existing is not None and existing.dispatched

        recipient = self.config.report_recipient or self.config.support_email
        context = self.engine.email.common_context(recipient, now)
        call_stats = self.engine.outcome_tracker.call_stats(attempts, now)
        rendered = self.engine.templates.render_email(
            "weekly_report", report=report, call_stats=call_stats, **context
        )
        report = report.model_copy(update={"html": rendered.body_html, "dispatched": already_dispatched})
        await self.repository.upsert_report(report)

        dispatched_now = False
        if not already_dispatched:
            result = await self.engine.email.send_internal(rendered.subject, rendered.body_html, rendered.body)
            if result.success:
                await self.repository.upsert_report(report.model_copy(update={"dispatched": True}))
                dispatched_now = True
            else:
                logger.warning(f"Weekly report {period} not sent: {result.error}")

        return {
            "report_id": period,
            "leads_total": report.leads_total,
            "emails_sent": report.emails_sent,
            "calls_total": call_stats.total,
            "call_conversion_rate": call_stats.conversion_rate,
            "dispatched_now": dispatched_now,
            "already_dispatched": already_dispatched,
        }

    async def retention_cleanup(self, now: datetime) -> Dict[str, Any]:
        result = await self.engine.consent.cleanup(now)
        return result.model_dump()

    async def archive_stale_records(self, now: datetime) -> Dict[str, Any]:
        """Archive cold / not-interested leads and closed tickets past their age limits."""
        lead_cutoff = now - timedelta(days=self.config.leads.archive_after_days)
        leads_archived = 0
        for lead in await self.repository.list(LeadFilter(statuses=[LeadStatus.COLD, LeadStatus.NOT_INTERESTED])):
            if (lead.last_contact_at or lead.created_at) >= lead_cutoff:
                continue
            async with self.engine.locks.lock(lead.id):
                current = await self.repository.get(lead.id)
                if current is None or current.archived:
                    continue
                await self.repository.upsert(current.model_copy(update={"archived": True, "updated_at": now}))
            leads_archived += 1

        ticket_cutoff = now - timedelta(days=self.config.tickets.archive_closed_after_days)
        tickets_archived = 0
        for ticket in await self.repository.list_tickets(statuses=[TicketStatus.CLOSED]):
            if (ticket.closed_at or ticket.created_at) >= ticket_cutoff:
                continue
            await self.repository.upsert_ticket(ticket.model_copy(update={"archived": True, "updated_at": now}))
            tickets_archived += 1

        logger.info(f"Archived {leads_archived} stale leads and {tickets_archived} closed tickets")
        return {"leads_archived": leads_archived, "tickets_archived": tickets_archived}

    # Scheduling

    @staticmethod
    def _parse_time(value: str) -> Tuple[int, int]:
        hour, minute = value.split(":")
        return int(hour), int(minute)

    def start(self) -> AsyncIOScheduler:
        """Register the cadences and start APScheduler on the running event loop."""
        if self._scheduler is not None and self._scheduler.running:
            return self._scheduler

        schedule = self.config.schedule
        tz = pytz.timezone(schedule.timezone)
        scheduler = AsyncIOScheduler(timezone=tz)

        morning_hour, morning_minute = self._parse_time(schedule.morning)
        afternoon_hour, afternoon_minute = self._parse_time(schedule.afternoon)
        weekly_hour, weekly_minute = self._parse_time(schedule.weekly_time)

        jobs = [
            (DAILY_MORNING, self.run_daily_morning, CronTrigger(hour=morning_hour, minute=morning_minute, timezone=tz)),
            (DAILY_AFTERNOON, self.run_daily_afternoon, CronTrigger(hour=afternoon_hour, minute=afternoon_minute, timezone=tz)),
            (WEEKLY, self.run_weekly, CronTrigger(
                day_of_week=schedule.weekly_day, hour=weekly_hour, minute=weekly_minute, timezone=tz,
            )),
        ]
        for job_id, func, trigger in jobs:
            scheduler.add_job(
                func,
                trigger,
                id=job_id,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )

        scheduler.start()
        self._scheduler = scheduler
        logger.info(
            f"Orchestration scheduler started ({schedule.timezone}): morning {schedule.morning}, "
            f"afternoon {schedule.afternoon}, weekly {schedule.weekly_day} {schedule.weekly_time}"
        )
        return scheduler

    def shutdown(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Orchestration scheduler stopped")
        self._scheduler = None


async def main():
    """Entry point for running the scheduler as a separate process."""
    from outreach.services.engine import get_engine

    engine = get_engine()
    scheduler = OrchestrationScheduler(engine)
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        stop.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    scheduler.start()
    try:
        await stop.wait()
    except KeyboardInterrupt:
        logger.info("Scheduler interrupted by user")
    finally:
        scheduler.shutdown()
        await engine.close()


def run():
    """Console entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    asyncio.run(main())


if __name__ == "__main__":
    run()
