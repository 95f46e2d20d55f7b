"""
Consent Domain Models
Per-channel opt-in status and provenance for one contact address
"""
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ConsentChannel(str, Enum):
    """Channels an unsubscribe request can target"""
    EMAIL = "email"
    SMS = "sms"
    CALL = "call"
    ALL = "all"


class ConsentPreferences(BaseModel):
    email_marketing: bool = False
    sms_marketing: bool = False
    call_marketing: bool = False

    def allows(self, channel: ConsentChannel) -> bool:
        if channel == ConsentChannel.EMAIL:
            return self.email_marketing
        if channel == ConsentChannel.SMS:
            return self.sms_marketing
        if channel == ConsentChannel.CALL:
            return self.call_marketing
        return self.email_marketing and self.sms_marketing and self.call_marketing

    @property
    def any_active(self) -> bool:
        return self.email_marketing or self.sms_marketing or self.call_marketing


class ConsentRecord(BaseModel):
    """
    One record per email address.

    A new opt-in for the same email replaces the previous record entirely;
    records are never merged.
    """
    email: str
    preferences: ConsentPreferences = Field(default_factory=ConsentPreferences)
    opted_in_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = "unknown"
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    def age(self, now: datetime) -> timedelta:
        return now - self.opted_in_at

    def is_expired(self, now: datetime, max_age_days: int) -> bool:
        """Consent older than the maximum age is expired even if the flag is set."""
        return self.age(now) >= timedelta(days=max_age_days)

    def is_valid_for(self, channel: ConsentChannel, now: datetime, max_age_days: int) -> bool:
        return not self.is_expired(now, max_age_days) and self.preferences.allows(channel)
