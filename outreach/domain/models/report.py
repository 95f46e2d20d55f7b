"""
Outreach Report Model
Weekly aggregate of lead, campaign, call and ticket activity
"""
from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import BaseModel, Field


class OutreachReport(BaseModel):
    """
    Aggregate for one reporting period.

    `id` is the period key (ISO week, e.g. "2024-W23"); recomputing the same
    period overwrites counts but keeps the dispatched flag.
    """
    id: str
    period_start: datetime
    period_end: datetime

    leads_total: int = 0
    leads_by_status: Dict[str, int] = Field(default_factory=dict)
    new_leads: int = 0

    emails_sent: int = 0
    emails_opened: int = 0
    emails_clicked: int = 0

    calls_total: int = 0
    call_outcomes: Dict[str, int] = Field(default_factory=dict)

    tickets_opened: int = 0
    tickets_resolved: int = 0
    mean_resolution_hours: Optional[float] = None

    html: str = ""
    dispatched: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def open_rate(self) -> float:
        return self.emails_opened / self.emails_sent if self.emails_sent else 0.0

    @property
    def click_rate(self) -> float:
        return self.emails_clicked / self.emails_sent if self.emails_sent else 0.0

    def same_counts(self, other: "OutreachReport") -> bool:
        """Compare aggregate content, ignoring html, dispatch flag and timestamps."""
        exclude = {"html", "dispatched", "created_at"}
        return self.model_dump(exclude=exclude) == other.model_dump(exclude=exclude)
