"""
Deterministic Text Intelligence
Rule-based scoring, classification and replies; no external calls
"""
from typing import Any, Dict

from outreach.domain.interfaces.text_intelligence import ScoreResult, TextIntelligence
from outreach.domain.models.inbound_email import CanonicalEmail, EmailClassification
from outreach.domain.services.keyword_classifier import classify_email, fallback_reply


class DeterministicTextIntelligence(TextIntelligence):
    """Used when no language model is configured, and as the fallback path."""

    def __init__(self, company_name: str = "Commertize"):
        self.company_name = company_name

    async def score(self, features: Dict[str, Any]) -> ScoreResult:
        value = int(features.get("deterministic_score", 0))
        return ScoreResult(score=max(0, min(100, value)), reasoning="weighted sum", source=self.name)

    async def classify(self, email: CanonicalEmail) -> EmailClassification:
        return classify_email(email)

    async def generate_reply(self, email: CanonicalEmail, classification: EmailClassification) -> str:
        return fallback_reply(classification, self.company_name)

    @property
    def name(self) -> str:
        return "deterministic"
