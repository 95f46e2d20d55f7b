"""
Campaigns API Endpoints
Manual batch dispatch of email campaigns and outbound calls
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from outreach.api.v1.dependencies import get_outreach_engine
from outreach.domain.models.contact_attempt import CampaignType
from outreach.domain.models.dispatch import DispatchResult
from outreach.domain.models.lead import Lead
from outreach.services.engine import OutreachEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/campaigns", tags=["campaigns"])

MAX_BATCH_SIZE = 100


class CampaignRequest(BaseModel):
    """Request body for a manual campaign batch"""
    campaign: CampaignType = CampaignType.INVESTMENT
    lead_ids: List[str] = Field(..., min_length=1, max_length=MAX_BATCH_SIZE)


class CampaignResponse(BaseModel):
    campaign: CampaignType
    requested: int
    succeeded: int
    blocked: int
    failed: int
    missing_lead_ids: List[str] = Field(default_factory=list)
    results: List[DispatchResult] = Field(default_factory=list)


async def _load_leads(engine: OutreachEngine, lead_ids: List[str]) -> tuple[List[Lead], List[str]]:
    leads, missing = [], []
    for lead_id in dict.fromkeys(lead_ids):
        lead = await engine.repository.get(lead_id)
        if lead is None or lead.archived:
            missing.append(lead_id)
        else:
            leads.append(lead)
    return leads, missing


def _response(body: CampaignRequest, results: List[DispatchResult], missing: List[str]) -> CampaignResponse:
    succeeded = sum(1 for r in results if r.success)
    blocked = sum(1 for r in results if r.blocked)
    return CampaignResponse(
        campaign=body.campaign,
        requested=len(body.lead_ids),
        succeeded=succeeded,
        blocked=blocked,
        failed=len(results) - succeeded - blocked,
        missing_lead_ids=missing,
        results=results,
    )


@router.post("/email")
async def send_email_campaign(
    body: CampaignRequest,
    engine: OutreachEngine = Depends(get_outreach_engine),
) -> CampaignResponse:
    """Send a campaign email to each lead, one at a time."""
    leads, missing = await _load_leads(engine, body.lead_ids)
    if not leads:
        raise HTTPException(status_code=404, detail="None of the requested leads were found")

    logger.info(f"Manual {body.campaign.value} email campaign for {len(leads)} leads")
    results = await engine.email.send_campaign(leads, body.campaign)
    return _response(body, results, missing)


@router.post("/call")
async def place_call_batch(
    body: CampaignRequest,
    engine: OutreachEngine = Depends(get_outreach_engine),
) -> CampaignResponse:
    """Place outbound calls to each lead, one at a time."""
    leads, missing = await _load_leads(engine, body.lead_ids)
    if not leads:
        raise HTTPException(status_code=404, detail="None of the requested leads were found")

    logger.info(f"Manual {body.campaign.value} call batch for {len(leads)} leads")
    results = await engine.voice.call_batch(leads, body.campaign)
    return _response(body, results, missing)
