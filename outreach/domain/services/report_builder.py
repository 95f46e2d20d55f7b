"""
Report Builder
Pure aggregates over leads, contact attempts, email events and tickets
"""
from collections import Counter
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

import pytz
from pydantic import BaseModel

from outreach.domain.models.contact_attempt import ContactAttempt, ContactChannel, ContactOutcome
from outreach.domain.models.dispatch import EmailEvent, EmailEventType
from outreach.domain.models.lead import Lead
from outreach.domain.models.report import OutreachReport
from outreach.domain.models.support_ticket import SupportTicket


class CampaignMetrics(BaseModel):
    sent: int = 0
    opened: int = 0
    clicked: int = 0
    bounced: int = 0

    @property
    def open_rate(self) -> float:
        return self.opened / self.sent if self.sent else 0.0

    @property
    def click_rate(self) -> float:
        return self.clicked / self.sent if self.sent else 0.0


def _in_period(value: Optional[datetime], start: datetime, end: datetime) -> bool:
    return value is not None and start <= value < end


def iso_week_period(now: datetime, timezone_name: str) -> Tuple[str, datetime, datetime]:
    """
    ISO week containing `now` in the given timezone.

    Returns:
        (key like "2024-W23", period start, period end) with UTC bounds
    """
    tz = pytz.timezone(timezone_name)
    local = now.astimezone(tz)
    year, week, weekday = local.isocalendar()
    monday = (local - timedelta(days=weekday - 1)).date()
    start_local = tz.localize(datetime(monday.year, monday.month, monday.day))
    end_local = tz.localize(datetime.combine(monday + timedelta(days=7), datetime.min.time()))
    return f"{year}-W{week:02d}", start_local.astimezone(pytz.utc), end_local.astimezone(pytz.utc)


def local_day_period(now: datetime, timezone_name: str) -> Tuple[datetime, datetime]:
    """Start and end (UTC) of the local calendar day containing `now`."""
    tz = pytz.timezone(timezone_name)
    local_date = now.astimezone(tz).date()
    start_local = tz.localize(datetime(local_date.year, local_date.month, local_date.day))
    end_local = tz.localize(datetime.combine(local_date + timedelta(days=1), datetime.min.time()))
    return start_local.astimezone(pytz.utc), end_local.astimezone(pytz.utc)


def campaign_metrics(
    attempts: List[ContactAttempt],
    events: List[EmailEvent],
    start: datetime,
    end: datetime,
) -> CampaignMetrics:
    """Email sends and engagement within [start, end). Engagement counts unique messages."""
    sent = sum(
        1 for a in attempts
        if a.channel == ContactChannel.EMAIL
        and a.outcome == ContactOutcome.CONNECTED
        and _in_period(a.created_at, start, end)
    )

    def unique(kind: EmailEventType) -> int:
        return len({e.provider_ref for e in events if e.event == kind and _in_period(e.created_at, start, end)})

    return CampaignMetrics(
        sent=sent,
        opened=unique(EmailEventType.OPEN),
        clicked=unique(EmailEventType.CLICK),
        bounced=unique(EmailEventType.BOUNCE),
    )


def build_weekly_report(
    period_key: str,
    start: datetime,
    end: datetime,
    leads: List[Lead],
    attempts: List[ContactAttempt],
    events: List[EmailEvent],
    tickets: List[SupportTicket],
    now: datetime,
) -> OutreachReport:
    """
    Aggregate one reporting period.

    Leads include archived ones so that archiving during the week does not
    change the counts of a recomputed report.
    """
    known_leads = [lead for lead in leads if lead.created_at < end]
    by_status = Counter(lead.status.value for lead in known_leads)

    metrics = campaign_metrics(attempts, events, start, end)

    calls = [
        a for a in attempts
        if a.channel == ContactChannel.VOICE and _in_period(a.created_at, start, end)
    ]
    call_outcomes = Counter(a.outcome.value for a in calls)

    opened = [t for t in tickets if _in_period(t.created_at, start, end)]
    resolved = [t for t in tickets if _in_period(t.resolved_at, start, end)]
    mean_resolution_hours = None
    if resolved:
        total_hours = sum((t.resolved_at - t.created_at).total_seconds() / 3600 for t in resolved)
        mean_resolution_hours = round(total_hours / len(resolved), 2)

    return OutreachReport(
        id=period_key,
        period_start=start,
        period_end=end,
        leads_total=len(known_leads),
        leads_by_status=dict(sorted(by_status.items())),
        new_leads=sum(1 for lead in known_leads if _in_period(lead.created_at, start, end)),
        emails_sent=metrics.sent,
        emails_opened=metrics.opened,
        emails_clicked=metrics.clicked,
        calls_total=len(calls),
        call_outcomes=dict(sorted(call_outcomes.items())),
        tickets_opened=len(opened),
        tickets_resolved=len(resolved),
        mean_resolution_hours=mean_resolution_hours,
        created_at=now,
    )
