"""
Compliance Models
Violation records produced by the compliance gate
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class Severity(str, Enum):
    """Violation severity. Only CRITICAL blocks a dispatch."""
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class Regulation(str, Enum):
    GDPR = "GDPR"
    CCPA = "CCPA"
    CAN_SPAM = "CAN-SPAM"
    TCPA = "TCPA"
    SEC = "SEC"


class ComplianceViolation(BaseModel):
    """Append-only audit record of a failed compliance rule."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    rule_id: str
    regulation: Regulation
    severity: Severity
    message: str
    channel: str
    recipient: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_blocking(self) -> bool:
        return self.severity == Severity.CRITICAL
