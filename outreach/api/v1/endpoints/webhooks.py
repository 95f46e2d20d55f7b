"""
Webhooks API Endpoints
Inbound email, email engagement events and voice call completion

Providers retry on non-2xx responses, so every webhook answers 200 with a
status message, including for payloads that were rejected.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request

from outreach.api.v1.dependencies import get_outreach_engine
from outreach.domain.models.dispatch import EmailEvent, EmailEventType
from outreach.domain.models.inbound_email import InboundProcessingResult
from outreach.domain.services.inbound_email import parse_timestamp
from outreach.services.engine import OutreachEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


# Provider event names -> EmailEventType
EMAIL_EVENT_MAP = {
    "delivered": EmailEventType.DELIVERED,
    "delivery": EmailEventType.DELIVERED,
    "open": EmailEventType.OPEN,
    "opened": EmailEventType.OPEN,
    "click": EmailEventType.CLICK,
    "clicked": EmailEventType.CLICK,
    "bounce": EmailEventType.BOUNCE,
    "bounced": EmailEventType.BOUNCE,
    "dropped": EmailEventType.BOUNCE,
    "spamreport": EmailEventType.SPAM_REPORT,
    "spam_report": EmailEventType.SPAM_REPORT,
    "complained": EmailEventType.SPAM_REPORT,
}


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return None


@router.post("/email/{provider}")
async def inbound_email(
    provider: str,
    request: Request,
    engine: OutreachEngine = Depends(get_outreach_engine),
) -> InboundProcessingResult:
    """
    Handle an inbound email webhook.

    Args:
        provider: zoho, gmail, sendgrid or generic
    """
    payload = await _read_json(request)
    if payload is None:
        form = await request.form()
        payload = dict(form) if form else None

    try:
        return await engine.inbound.process(payload, provider)
    except Exception as e:
        logger.error(f"Error processing inbound email ({provider}): {e}", exc_info=True)
        return InboundProcessingResult(success=False, message="Internal error while processing email")


async def _to_email_event(engine: OutreachEngine, item: Dict[str, Any], now: datetime) -> Optional[EmailEvent]:
    event_type = EMAIL_EVENT_MAP.get(str(item.get("event", "")).lower())
    provider_ref = item.get("provider_ref") or item.get("message_id") or item.get("sg_message_id")
    if event_type is None or not provider_ref:
        return None

    email = item.get("email")
    lead_id = item.get("lead_id")
    if lead_id is None and email:
        lead = await engine.repository.get_by_email(email)
        lead_id = lead.id if lead else None

    return EmailEvent(
        provider_ref=str(provider_ref),
        event=event_type,
        lead_id=lead_id,
        email=email.strip().lower() if email else None,
        created_at=parse_timestamp(item.get("timestamp"), now),
    )


@router.post("/email-events")
async def email_events(
    request: Request,
    engine: OutreachEngine = Depends(get_outreach_engine),
) -> Dict[str, Any]:
    """Record delivery, open, click and bounce events (single object or batch list)."""
    payload = await _read_json(request)
    items: List[Any] = payload if isinstance(payload, list) else [payload]
    now = engine.clock.now()

    recorded = skipped = 0
    for item in items:
        if not isinstance(item, dict):
            skipped += 1
            continue
        try:
            event = await _to_email_event(engine, item, now)
            if event is None:
                skipped += 1
                continue
            await engine.repository.append_email_event(event)
            recorded += 1
        except Exception as e:
            logger.error(f"Failed to record email event: {e}")
            skipped += 1

    if skipped:
        logger.warning(f"Skipped {skipped} unrecognized email events")
    return {"status": "ok", "recorded": recorded, "skipped": skipped}


@router.post("/voice/call-completed")
async def call_completed(
    request: Request,
    engine: OutreachEngine = Depends(get_outreach_engine),
) -> Dict[str, Any]:
    """Handle the voice provider's call-completion webhook."""
    payload = await _read_json(request)
    if not isinstance(payload, dict):
        logger.warning("Call completion webhook without JSON object body")
        return {"status": "ignored"}

    try:
        completion = engine.voice_provider.parse_completion(payload)
        if completion is None:
            return {"status": "ignored"}

        attempt = await engine.voice.handle_call_completion(completion)
    except Exception as e:
        logger.error(f"Error handling call completion: {e}", exc_info=True)
        return {"status": "error"}

    if attempt is None:
        return {"status": "unknown_call", "call_ref": completion.call_ref}

    return {
        "status": "recorded",
        "call_ref": completion.call_ref,
        "lead_id": attempt.lead_id,
        "outcome": attempt.outcome.value,
    }
