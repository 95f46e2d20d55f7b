"""
Scoring Engine
Computes a 0-100 priority score and status bucket for each lead

The deterministic weighted sum is the source of truth. An optional text
intelligence backend may propose a higher-fidelity score; any error, timeout
or out-of-range answer falls back to the deterministic score.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from outreach.core.config import ScoringConfig
from outreach.domain.interfaces.text_intelligence import ScoreResult, TextIntelligence
from outreach.domain.models.lead import Lead, LeadSource, LeadStatus

logger = logging.getLogger(__name__)


def clamp_score(value: int) -> int:
    return max(0, min(100, int(value)))


class ScoringEngine:
    """
    Lead scorer.

    Responsibilities:
    - Deterministic weighted-sum score and threshold status mapping
    - Optional model-backed score with guaranteed fallback
    - Producing updated lead snapshots (never persists)
    """

    def __init__(
        self,
        config: Optional[ScoringConfig] = None,
        text_intelligence: Optional[TextIntelligence] = None,
        timeout_seconds: float = 10.0,
    ):
        self.config = config or ScoringConfig()
        self.text_intelligence = text_intelligence
        self.timeout_seconds = timeout_seconds

        if self.config.warm_threshold > self.config.hot_threshold:
            raise ValueError("warm_threshold must not exceed hot_threshold")

    def deterministic_score(self, lead: Lead, now: datetime) -> int:
        cfg = self.config
        score = cfg.base_score

        if lead.company and lead.company.strip():
            score += cfg.company_bonus
        if lead.has_phone:
            score += cfg.phone_bonus

        if lead.industry:
            industry = lead.industry.lower()
            matches = sum(1 for keyword in cfg.high_fit_industries if keyword.lower() in industry)
            score += min(matches * cfg.industry_bonus, cfg.industry_bonus_cap)

        if lead.source == LeadSource.REFERRAL:
            score += cfg.referral_bonus

        if lead.last_contact_at is not None:
            if now - lead.last_contact_at <= timedelta(days=cfg.recent_contact_days):
                score += cfg.recent_contact_bonus

        return clamp_score(score)

    def status_for(self, score: int) -> LeadStatus:
        if score >= self.config.hot_threshold:
            return LeadStatus.HOT
        if score >= self.config.warm_threshold:
            return LeadStatus.WARM
        return LeadStatus.COLD

    def score(self, lead: Lead, now: datetime) -> Tuple[int, LeadStatus]:
        """Deterministic (score, status) for a lead snapshot."""
        value = self.deterministic_score(lead, now)
        return value, self.status_for(value)

    def features(self, lead: Lead, now: datetime) -> Dict[str, Any]:
        days_since_contact = None
        if lead.last_contact_at is not None:
            days_since_contact = (now - lead.last_contact_at).days
        return {
            "company": lead.company,
            "has_phone": lead.has_phone,
            "industry": lead.industry,
            "source": lead.source.value,
            "days_since_contact": days_since_contact,
            "deterministic_score": self.deterministic_score(lead, now),
        }

    async def score_lead(self, lead: Lead, now: datetime) -> ScoreResult:
        """
        Score a lead, preferring the text intelligence backend when present.

        Never raises.
        """
        fallback, _ = self.score(lead, now)
        if self.text_intelligence is None:
            return ScoreResult(score=fallback, reasoning="weighted sum", source="deterministic")

        try:
            result = await asyncio.wait_for(
                self.text_intelligence.score(self.features(lead, now)),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Scoring timed out for lead {lead.id}, using weighted sum")
            return ScoreResult(score=fallback, reasoning="fallback: timeout", source="deterministic")
        except Exception as e:
            logger.warning(f"Scoring failed for lead {lead.id}: {e}, using weighted sum")
            return ScoreResult(score=fallback, reasoning="fallback: error", source="deterministic")

        if result is None or not 0 <= result.score <= 100:
            logger.warning(f"Out-of-range score for lead {lead.id}, using weighted sum")
            return ScoreResult(score=fallback, reasoning="fallback: invalid score", source="deterministic")

        return result

    def apply(self, lead: Lead, result: ScoreResult, now: datetime) -> Lead:
        """
        Return an updated copy with score, status and scored_at.

        not_interested is terminal for scoring: the score is refreshed but
        the status is kept.
        """
        value = clamp_score(result.score)
        status = lead.status if lead.status == LeadStatus.NOT_INTERESTED else self.status_for(value)
        return lead.model_copy(update={
            "score": value,
            "status": status,
            "scored_at": now,
            "updated_at": now,
        })

    @staticmethod
    def needs_scoring(lead: Lead, period_start: Optional[datetime] = None) -> bool:
        """
        Unscored, or contacted since the last scoring pass.

        Leads already scored at or after `period_start` are skipped so that a
        second run in the same period does not rescore them.
        """
        if lead.scored_at is None:
            return True
        if period_start is not None and lead.scored_at >= period_start:
            return False
        return lead.last_contact_at is not None and lead.last_contact_at > lead.scored_at
