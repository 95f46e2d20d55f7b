"""
Vapi Voice Provider
Outbound AI voice calls via the Vapi REST API (httpx)

Calls are placed asynchronously: place_call returns the Vapi call id and the
outcome arrives on the call-completion webhook. Without VAPI_API_KEY calls
are simulated so the rest of the pipeline can run in development.
"""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from outreach.core.config import Settings
from outreach.domain.interfaces.errors import ProviderError
from outreach.domain.interfaces.voice_provider import VoiceProvider
from outreach.domain.models.contact_attempt import ContactOutcome
from outreach.domain.models.dispatch import CallCompletion

logger = logging.getLogger(__name__)


# Vapi endedReason -> normalized provider status
ENDED_REASON_STATUS = {
    "customer-did-not-answer": "no-answer",
    "customer-busy": "busy",
    "voicemail": "voicemail",
    "customer-ended-call": "completed",
    "assistant-ended-call": "completed",
    "assistant-said-end-call-phrase": "completed",
    "exceeded-max-duration": "completed",
    "silence-timed-out": "completed",
    "twilio-failed-to-connect-call": "failed",
    "pipeline-error": "failed",
}

COMPLETION_EVENT_TYPES = {"end-of-call-report", "call-end"}


class VapiVoiceProvider(VoiceProvider):
    """
    Vapi outbound calling.

    Script ids map to pre-configured assistant ids (VAPI_ASSISTANT_IDS);
    unmapped scripts are sent as a transient assistant built from the
    rendered script in the call metadata.
    """

    def __init__(
        self,
        api_key: Optional[str],
        phone_number_id: Optional[str],
        base_url: str = "https://api.vapi.ai",
        assistant_ids: Optional[Dict[str, str]] = None,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._api_key = api_key
        self._phone_number_id = phone_number_id
        self._base_url = base_url.rstrip("/")
        self._assistant_ids = dict(assistant_ids or {})
        self._timeout = timeout
        self._client = client
        self._initialized = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "VapiVoiceProvider":
        return cls(
            api_key=settings.vapi_api_key,
            phone_number_id=settings.vapi_phone_number_id,
            base_url=settings.vapi_base_url,
            assistant_ids=settings.vapi_assistant_ids,
        )

    @property
    def name(self) -> str:
        return "vapi"

    @property
    def is_simulated(self) -> bool:
        return not self._api_key

    async def initialize(self) -> None:
        """Create the HTTP client."""
        if self._initialized:
            return

        if self.is_simulated:
            logger.warning("Vapi credentials not configured - calls will be simulated")
            self._initialized = True
            return

        if not self._phone_number_id:
            raise ValueError("VAPI_PHONE_NUMBER_ID is required when VAPI_API_KEY is set")

        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self._timeout,
            )
        self._initialized = True
        logger.info("VapiVoiceProvider initialized successfully")

    def _build_payload(self, to_number: str, script_id: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "phoneNumberId": self._phone_number_id,
            "customer": {"number": to_number},
            "name": f"{script_id} call",
            "metadata": {k: v for k, v in metadata.items() if k not in ("system_prompt", "first_message")},
        }
        if metadata.get("lead_name"):
            payload["customer"]["name"] = metadata["lead_name"]

        assistant_id = self._assistant_ids.get(script_id)
        if assistant_id:
            payload["assistantId"] = assistant_id
            overrides: Dict[str, Any] = {
                "variableValues": {
                    "leadName": metadata.get("lead_name") or "there",
                    "leadCompany": metadata.get("lead_company") or "your organization",
                    "campaignType": metadata.get("campaign_type"),
                },
            }
            if metadata.get("first_message"):
                overrides["firstMessage"] = metadata["first_message"]
            payload["assistantOverrides"] = overrides
        else:
            payload["assistant"] = {
                "firstMessage": metadata.get("first_message", ""),
                "model": {
                    "provider": "openai",
                    "model": "gpt-4o-mini",
                    "messages": [{"role": "system", "content": metadata.get("system_prompt", "")}],
                    "temperature": 0.7,
                    "maxTokens": 250,
                },
                "endCallMessage": "Thank you for your time. Have a great day!",
                "endCallPhrases": ["goodbye", "bye"],
                "silenceTimeoutSeconds": 10,
            }
        return payload

    async def place_call(
        self,
        to_number: str,
        script_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Place an outbound call.

        Returns:
            Vapi call id (a random id when simulated)

        Raises:
            ProviderError: If Vapi rejects the call or is unreachable
        """
        if not self._initialized:
            await self.initialize()

        metadata = metadata or {}

        if self.is_simulated:
            call_ref = f"sim-{uuid.uuid4()}"
            logger.warning(f"Vapi not configured - simulating call {call_ref} to {to_number}")
            return call_ref

        payload = self._build_payload(to_number, script_id, metadata)
        logger.info(f"Initiating Vapi call to {to_number} ({script_id})")

        try:
            response = await self._client.post("/call", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Vapi API error: {e.response.status_code} - {e.response.text}")
            raise ProviderError(self.name, f"call rejected with HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Vapi request failed: {e}")
            raise ProviderError(self.name, f"request failed: {e}") from e

        call_ref = response.json().get("id")
        if not call_ref:
            raise ProviderError(self.name, "no call id returned")

        logger.info(f"Vapi call initiated: id={call_ref}")
        return call_ref

    @staticmethod
    def _duration(message: Dict[str, Any], call: Dict[str, Any]) -> int:
        for value in (message.get("durationSeconds"), call.get("duration"), message.get("duration")):
            if value is not None:
                try:
                    return max(0, int(float(value)))
                except (TypeError, ValueError):
                    continue

        started, ended = call.get("startedAt"), call.get("endedAt")
        if started and ended:
            try:
                delta = datetime.fromisoformat(ended.replace("Z", "+00:00")) - \
                    datetime.fromisoformat(started.replace("Z", "+00:00"))
                return max(0, int(delta.total_seconds()))
            except ValueError:
                logger.warning(f"Unparseable call timestamps: {started!r} / {ended!r}")
        return 0

    @staticmethod
    def _explicit_outcome(message: Dict[str, Any], payload: Dict[str, Any]) -> Optional[ContactOutcome]:
        structured = ((message.get("analysis") or {}).get("structuredData") or {})
        for value in (structured.get("outcome"), message.get("outcome"), payload.get("outcome")):
            if value in ContactOutcome._value2member_map_:
                return ContactOutcome(value)
        return None

    def parse_completion(self, payload: Dict[str, Any]) -> Optional[CallCompletion]:
        """
        Parse a Vapi server message.

        Accepts {"message": {"type": "end-of-call-report", "call": {...}, ...}}
        and the flat {"type": "call-end", "call": {...}} shape.
        """
        message = payload.get("message") if isinstance(payload.get("message"), dict) else payload
        if message.get("type") not in COMPLETION_EVENT_TYPES:
            return None

        call = message.get("call") or {}
        call_ref = call.get("id") or message.get("callId") or payload.get("call_ref")
        if not call_ref:
            logger.warning("Call completion without call id")
            return None

        ended_reason = message.get("endedReason") or call.get("endedReason")
        status = call.get("status") or "unknown"
        if ended_reason:
            status = ENDED_REASON_STATUS.get(ended_reason, status)

        return CallCompletion(
            call_ref=call_ref,
            provider_status=status,
            duration_seconds=self._duration(message, call),
            outcome=self._explicit_outcome(message, payload),
            notes=message.get("summary") or (message.get("analysis") or {}).get("summary"),
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._initialized = False
