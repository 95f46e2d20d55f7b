"""
Voice Dispatcher
Outbound call placement and call-completion handling

place_call returns once the provider accepts the call. The outcome is
recorded later, when the completion webhook arrives and is correlated to
the lead through the stored CallPlacement.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from outreach.core.clock import Clock, SystemClock
from outreach.core.config import OutreachConfig
from outreach.domain.interfaces.errors import ProviderError
from outreach.domain.interfaces.lead_repository import LeadNotFoundError, LeadRepository
from outreach.domain.interfaces.voice_provider import VoiceProvider
from outreach.domain.models.contact_attempt import (
    CampaignType,
    ContactAttempt,
    ContactChannel,
    ContactOutcome,
)
from outreach.domain.models.dispatch import CallCompletion, CallPlacement, DispatchResult, OutboundMessage
from outreach.domain.models.lead import Lead
from outreach.domain.services.call_script_manager import CallScript, CallScriptManager
from outreach.domain.services.compliance_gate import ComplianceGate
from outreach.domain.services.outcome_tracker import OutcomeTracker

logger = logging.getLogger(__name__)

# Calls longer than this count as a conversation regardless of provider status
CONNECTED_MIN_DURATION_SECONDS = 30

PROVIDER_STATUS_OUTCOMES: Dict[str, ContactOutcome] = {
    "completed": ContactOutcome.CONNECTED,
    "no-answer": ContactOutcome.NO_ANSWER,
    "busy": ContactOutcome.BUSY,
    "voicemail": ContactOutcome.VOICEMAIL,
    "failed": ContactOutcome.DISCONNECTED,
    "disconnected": ContactOutcome.DISCONNECTED,
}


def outcome_for_completion(completion: CallCompletion) -> ContactOutcome:
    """
    Map a provider completion to a contact outcome.

    An explicit outcome from the provider wins; otherwise a call longer
    than 30 seconds is connected, then the provider status decides and
    anything unrecognized is treated as no answer.
    """
    if completion.outcome is not None:
        return completion.outcome
    if completion.duration_seconds > CONNECTED_MIN_DURATION_SECONDS:
        return ContactOutcome.CONNECTED
    status = (completion.provider_status or "").strip().lower().replace("_", "-")
    return PROVIDER_STATUS_OUTCOMES.get(status, ContactOutcome.NO_ANSWER)


class VoiceDispatcher:
    """
    Outbound voice channel.

    Responsibilities:
    - Render persona call scripts
    - Gate each call on call consent and script content
    - Place calls and store the call reference for correlation
    - Turn completion webhooks into recorded outcomes
    """

    def __init__(
        self,
        provider: VoiceProvider,
        repository: LeadRepository,
        gate: ComplianceGate,
        outcome_tracker: OutcomeTracker,
        script_manager: Optional[CallScriptManager] = None,
        config: Optional[OutreachConfig] = None,
        clock: Optional[Clock] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or OutreachConfig()
        self.provider = provider
        self.repository = repository
        self.gate = gate
        self.outcome_tracker = outcome_tracker
        self.script_manager = script_manager or CallScriptManager(company_name=self.config.company_name)
        self.clock = clock or SystemClock()
        self._sleep = sleep

    def generate_script(self, lead: Lead, campaign: CampaignType) -> CallScript:
        return self.script_manager.generate_script(lead, campaign)

    def generate_scripts(self, leads: List[Lead], campaign: CampaignType) -> List[CallScript]:
        """Scripts for the leads that can be called; leads without a phone are skipped."""
        return [self.generate_script(lead, campaign) for lead in leads if lead.has_phone]

    def _system_prompt(self, script: CallScript) -> str:
        objections = "\n".join(f"- {key.replace('_', ' ')}: {text}" for key, text in script.objection_handling.items())
        closings = "\n".join(f"- {option}" for option in script.closing_options)
        return (
            f"You are {self.script_manager.agent_name}, an outreach representative for "
            f"{self.script_manager.company_name}. Keep the call short and professional.\n\n"
            f"Value proposition:\n{script.value_proposition}\n\n"
            f"Objection handling:\n{objections}\n\n"
            f"Closing options:\n{closings}\n\n"
            "Never promise guaranteed returns or describe any investment as risk-free. "
            "If the person asks not to be called again, apologize and end the call."
        )

    def _call_metadata(self, lead: Lead, campaign: CampaignType, script: CallScript) -> Dict[str, Any]:
        return {
            "lead_id": lead.id,
            "lead_name": lead.name,
            "lead_company": lead.company,
            "campaign_type": campaign.value,
            "first_message": script.opening,
            "system_prompt": self._system_prompt(script),
        }

    async def _record(self, lead: Lead, outcome: ContactOutcome, campaign: CampaignType, **kwargs) -> None:
        try:
            await self.outcome_tracker.record(
                lead_id=lead.id,
                channel=ContactChannel.VOICE,
                outcome=outcome,
                campaign_type=campaign,
                **kwargs,
            )
        except LeadNotFoundError:
            logger.warning(f"Lead {lead.id} disappeared before its call outcome was recorded")

    async def place_call(self, lead: Lead, campaign: CampaignType) -> DispatchResult:
        """
        Gate and place one outbound call.

        A provider failure records a disconnected attempt; a blocked call
        records nothing.
        """
        if not lead.has_phone:
            logger.warning(f"Lead {lead.id} has no phone number, skipping call")
            return DispatchResult(success=False, lead_id=lead.id, error="Lead has no phone number")

        now = self.clock.now()
        script = self.generate_script(lead, campaign)
        consent = await self.repository.get_consent(lead.email)

        message = OutboundMessage(
            channel=ContactChannel.VOICE,
            recipient_email=lead.email,
            recipient_phone=lead.phone,
            text=script.full_text(),
            is_marketing=True,
            consent=consent,
        )
        violations = self.gate.validate(message, now)
        for violation in violations:
            await self.repository.append_violation(violation)

        if self.gate.is_blocking(violations):
            logger.warning(f"Call to lead {lead.id} blocked by compliance: {[v.rule_id for v in violations]}")
            return DispatchResult(
                success=False,
                lead_id=lead.id,
                blocked=True,
                error="Blocked by compliance gate",
                violations=violations,
            )

        try:
            call_ref = await self.provider.place_call(
                to_number=lead.phone,
                script_id=script.script_id,
                metadata=self._call_metadata(lead, campaign, script),
            )
        except ProviderError as e:
            logger.error(f"Voice provider failed for lead {lead.id}: {e}")
            await self._record(lead, ContactOutcome.DISCONNECTED, campaign, now=now, notes=str(e))
            return DispatchResult(success=False, lead_id=lead.id, error=str(e), violations=violations)
        except Exception as e:
            logger.error(f"Unexpected error placing call for lead {lead.id}: {e}")
            await self._record(lead, ContactOutcome.DISCONNECTED, campaign, now=now, notes=str(e))
            return DispatchResult(success=False, lead_id=lead.id, error=str(e), violations=violations)

        await self.repository.record_call_placement(CallPlacement(
            call_ref=call_ref,
            lead_id=lead.id,
            campaign_type=campaign,
            phone_number=lead.phone,
            script_id=script.script_id,
            placed_at=now,
        ))

        logger.info(f"Placed {campaign.value} call to lead {lead.id}: {call_ref}")
        return DispatchResult(success=True, lead_id=lead.id, provider_ref=call_ref, violations=violations)

    async def call_batch(self, leads: List[Lead], campaign: CampaignType) -> List[DispatchResult]:
        """Place calls one at a time with the configured delay between calls."""
        results = []
        delay = self.config.dispatch.call_delay_seconds

        for index, lead in enumerate(leads):
            if index and delay:
                await self._sleep(delay)
            results.append(await self.place_call(lead, campaign))

        placed = sum(1 for r in results if r.success)
        logger.info(f"{campaign.value} call batch: {placed}/{len(results)} calls placed")
        return results

    async def handle_call_completion(self, completion: CallCompletion) -> Optional[ContactAttempt]:
        """
        Record the outcome of a finished call.

        Unknown call references are logged and skipped. A redelivered
        completion returns the attempt recorded the first time.
        """
        placement = await self.repository.get_call_placement(completion.call_ref)
        if placement is None:
            logger.warning(f"Call completion for unknown call {completion.call_ref}")
            return None

        outcome = outcome_for_completion(completion)
        try:
            attempt, _ = await self.outcome_tracker.record(
                lead_id=placement.lead_id,
                channel=ContactChannel.VOICE,
                outcome=outcome,
                campaign_type=placement.campaign_type,
                duration_seconds=completion.duration_seconds,
                notes=completion.notes,
                provider_ref=completion.call_ref,
                once_per_ref=True,
            )
        except LeadNotFoundError:
            logger.warning(f"Call {completion.call_ref} completed for missing lead {placement.lead_id}")
            return None

        logger.info(f"Call {completion.call_ref} completed: {outcome.value} ({completion.duration_seconds}s)")
        return attempt
