"""
Lead Domain Models
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class LeadStatus(str, Enum):
    """Engagement status of a lead"""
    NEW = "new"
    CONTACTED = "contacted"
    WARM = "warm"
    HOT = "hot"
    COLD = "cold"
    NOT_INTERESTED = "not_interested"


class LeadSource(str, Enum):
    """How the lead entered the funnel"""
    MANUAL = "manual"
    IMPORT = "import"
    REFERRAL = "referral"
    WEBSITE = "website"
    WEBHOOK = "webhook"
    OTHER = "other"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Lead(BaseModel):
    """
    Prospective investor or property sponsor.

    Score and status are written only by a scoring pass or a recorded contact
    outcome. Leads are archived, never deleted.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    email: str
    phone: Optional[str] = None
    name: Optional[str] = None
    company: Optional[str] = None
    industry: Optional[str] = None
    source: LeadSource = LeadSource.MANUAL

    status: LeadStatus = LeadStatus.NEW
    score: int = Field(default=0, ge=0, le=100)
    last_contact_at: Optional[datetime] = None
    scored_at: Optional[datetime] = None
    notes: Optional[str] = None

    archived: bool = False
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        value = value.strip().lower()
        if "@" not in value:
            raise ValueError(f"Invalid email address: {value!r}")
        return value

    @property
    def has_phone(self) -> bool:
        return bool(self.phone and self.phone.strip() and self.phone.strip().lower() != "unknown")


class LeadFilter(BaseModel):
    """Repository query for leads. Unset fields do not filter."""
    statuses: Optional[List[LeadStatus]] = None
    include_archived: bool = False
    has_phone: Optional[bool] = None
    limit: Optional[int] = None

    def matches(self, lead: Lead) -> bool:
        if not self.include_archived and lead.archived:
            return False
        if self.statuses is not None and lead.status not in self.statuses:
            return False
        if self.has_phone is not None and lead.has_phone != self.has_phone:
            return False
        return True
