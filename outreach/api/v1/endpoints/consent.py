"""
Consent API Endpoints
Opt-in capture, unsubscribe and compliance reporting
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field, field_validator

from outreach.api.v1.dependencies import get_outreach_engine
from outreach.domain.models.consent import ConsentChannel, ConsentPreferences, ConsentRecord
from outreach.services.consent_service import ComplianceReport, ComplianceStatus
from outreach.services.engine import OutreachEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/consent", tags=["consent"])


def _validate_email(value: str) -> str:
    value = value.strip().lower()
    local, _, domain = value.partition("@")
    if not local or "." not in domain:
        raise ValueError("Invalid email address")
    return value


class OptInRequest(BaseModel):
    """Request body for recording marketing consent"""
    email: str = Field(..., max_length=255)
    email_marketing: bool = False
    sms_marketing: bool = False
    call_marketing: bool = False
    source: str = Field("website", max_length=100)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _validate_email(v)


class UnsubscribeRequest(BaseModel):
    email: str = Field(..., max_length=255)
    channel: ConsentChannel = ConsentChannel.ALL

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _validate_email(v)


@router.post("/opt-in", status_code=status.HTTP_201_CREATED)
async def opt_in(
    body: OptInRequest,
    request: Request,
    engine: OutreachEngine = Depends(get_outreach_engine),
) -> ConsentRecord:
    """Record consent. Replaces any earlier record for the same email."""
    preferences = ConsentPreferences(
        email_marketing=body.email_marketing,
        sms_marketing=body.sms_marketing,
        call_marketing=body.call_marketing,
    )
    if not preferences.any_active:
        raise HTTPException(status_code=400, detail="At least one channel must be opted in")

    return await engine.consent.record_opt_in(
        email=body.email,
        preferences=preferences,
        source=body.source,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


@router.post("/unsubscribe")
async def unsubscribe(
    body: UnsubscribeRequest,
    engine: OutreachEngine = Depends(get_outreach_engine),
) -> Dict[str, str]:
    if not await engine.consent.handle_unsubscribe(body.email, body.channel):
        raise HTTPException(status_code=404, detail="No consent record for this email")
    return {"status": "unsubscribed", "email": body.email, "channel": body.channel.value}


@router.get("/status")
async def consent_status(engine: OutreachEngine = Depends(get_outreach_engine)) -> ComplianceStatus:
    return await engine.consent.compliance_status()


@router.get("/report")
async def consent_report(engine: OutreachEngine = Depends(get_outreach_engine)) -> ComplianceReport:
    """Compliance audit report: summary, recent violations, recommendations."""
    return await engine.consent.compliance_report()


@router.get("/{email}")
async def get_consent(
    email: str,
    engine: OutreachEngine = Depends(get_outreach_engine),
) -> Dict[str, Any]:
    record = await engine.consent.get_consent(email)
    if record is None:
        raise HTTPException(status_code=404, detail="No consent record for this email")

    now = engine.clock.now()
    max_age = engine.config.compliance.consent_max_age_days
    return {
        "record": record,
        "expired": record.is_expired(now, max_age),
        "email_valid": record.is_valid_for(ConsentChannel.EMAIL, now, max_age),
        "call_valid": record.is_valid_for(ConsentChannel.CALL, now, max_age),
    }
