"""
Text Intelligence Interface
Abstract contract for lead scoring, email classification and reply drafting
"""
from abc import ABC, abstractmethod
from typing import Any, Dict

from pydantic import BaseModel, Field

from outreach.domain.models.inbound_email import CanonicalEmail, EmailClassification


class TextIntelligenceError(Exception):
    """Raised when a text intelligence backend fails or returns unusable output."""
    pass


class ScoreResult(BaseModel):
    score: int = Field(ge=0, le=100)
    reasoning: str = ""
    source: str = "deterministic"


class TextIntelligence(ABC):
    """
    Scoring, classification and reply generation.

    Implementations may raise; callers apply a timeout and fall back to the
    deterministic implementation.
    """

    @abstractmethod
    async def score(self, features: Dict[str, Any]) -> ScoreResult:
        """
        Score a lead from its features.

        Args:
            features: Lead attributes (company, phone, industry, source,
                days_since_contact, deterministic_score)
        """
        pass

    @abstractmethod
    async def classify(self, email: CanonicalEmail) -> EmailClassification:
        pass

    @abstractmethod
    async def generate_reply(self, email: CanonicalEmail, classification: EmailClassification) -> str:
        """Plain-text reply body (no greeting footer or unsubscribe block)."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Implementation name"""
        pass
