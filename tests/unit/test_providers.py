"""
Tests for external provider adapters
Groq text intelligence, Vapi voice and SMTP email, with mocked transports
"""
import json
import smtplib
from datetime import datetime, timezone
from types import SimpleNamespace

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from outreach.core.config import Settings
from outreach.domain.interfaces.errors import ProviderError
from outreach.domain.interfaces.text_intelligence import TextIntelligenceError
from outreach.domain.models.contact_attempt import ContactOutcome
from outreach.domain.models.dispatch import OutboundEmail
from outreach.domain.models.inbound_email import CanonicalEmail, EmailCategory
from outreach.domain.models.support_ticket import TicketPriority
from outreach.infrastructure.email.smtp import SMTPConfigError, SMTPEmailProvider
from outreach.infrastructure.llm.deterministic import DeterministicTextIntelligence
from outreach.infrastructure.llm.factory import TextIntelligenceFactory, create_text_intelligence
from outreach.infrastructure.llm.groq import GroqTextIntelligence
from outreach.infrastructure.voice.vapi import VapiVoiceProvider

FIXED_NOW = datetime(2024, 6, 5, 16, 0, tzinfo=timezone.utc)


def _groq_with_reply(content: str) -> GroqTextIntelligence:
    client = MagicMock()
    response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
    client.chat.completions.create = AsyncMock(return_value=response)
    return GroqTextIntelligence(api_key="", client=client)


def _email() -> CanonicalEmail:
    return CanonicalEmail(
        from_address="jane@example.com",
        to_address="support@commertize.com",
        subject="Minimum investment",
        body="What is the minimum investment?",
        timestamp=FIXED_NOW,
    )


class TestTextIntelligenceFactory:
    """Tests for provider selection"""

    def test_deterministic_without_key(self):
        """No Groq key selects the rule-based backend"""
        backend = create_text_intelligence(Settings(_env_file=None, groq_api_key=None))
        assert isinstance(backend, DeterministicTextIntelligence)
        assert backend.name == "deterministic"

    def test_groq_with_key(self):
        """A Groq key selects Groq"""
        backend = create_text_intelligence(Settings(_env_file=None, groq_api_key="gsk_test"))
        assert isinstance(backend, GroqTextIntelligence)

    def test_unknown_provider(self):
        """Unknown names list the registered providers"""
        with pytest.raises(ValueError) as exc:
            TextIntelligenceFactory.create("openai")
        assert "groq" in str(exc.value)


class TestGroqTextIntelligence:
    """Tests for Groq response parsing"""

    @pytest.mark.asyncio
    async def test_score(self):
        """JSON scores are parsed into a ScoreResult"""
        backend = _groq_with_reply(json.dumps({"score": 72, "reasoning": "Has company and phone"}))

        result = await backend.score({"company": "Acme"})

        assert result.score == 72
        assert result.source == "groq"
        kwargs = backend._client.chat.completions.create.await_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self):
        """Non-JSON content is a TextIntelligenceError"""
        backend = _groq_with_reply("not json")
        with pytest.raises(TextIntelligenceError):
            await backend.score({})

    @pytest.mark.asyncio
    async def test_classify(self):
        """Classification values map onto the enums"""
        backend = _groq_with_reply(json.dumps({
            "category": "investment_inquiry",
            "sentiment": "positive",
            "priority": "high",
            "topics": ["minimums"],
        }))

        result = await backend.classify(_email())

        assert result.category == EmailCategory.INVESTMENT_INQUIRY
        assert result.priority == TicketPriority.HIGH
        assert result.topics == ["minimums"]

    @pytest.mark.asyncio
    async def test_unknown_category_raises(self):
        """Values outside the enums are rejected"""
        backend = _groq_with_reply(json.dumps({"category": "spam"}))
        with pytest.raises(TextIntelligenceError):
            await backend.classify(_email())

    @pytest.mark.asyncio
    async def test_client_error_raises(self):
        """Transport failures are wrapped"""
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=RuntimeError("rate limited"))
        backend = GroqTextIntelligence(api_key="", client=client)

        with pytest.raises(TextIntelligenceError):
            await backend.generate_reply(_email(), await DeterministicTextIntelligence().classify(_email()))


class TestVapiVoiceProvider:
    """Tests for Vapi call placement and webhook parsing"""

    @pytest.mark.asyncio
    async def test_simulated_without_key(self):
        """No API key simulates the call"""
        provider = VapiVoiceProvider(api_key=None, phone_number_id=None)
        call_ref = await provider.place_call("+15550001111", "investment_outreach", {})
        assert call_ref.startswith("sim-")

    @pytest.mark.asyncio
    async def test_place_call(self):
        """The call payload carries the number, script and metadata"""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(json.loads(request.content))
            return httpx.Response(201, json={"id": "vapi-call-1"})

        client = httpx.AsyncClient(base_url="https://api.vapi.ai", transport=httpx.MockTransport(handler))
        provider = VapiVoiceProvider(api_key="key", phone_number_id="pn-1", client=client)

        call_ref = await provider.place_call("+15550001111", "investment_outreach", {
            "lead_id": "lead-1",
            "lead_name": "Jane",
            "first_message": "Hi Jane",
            "system_prompt": "You are calling about investments",
        })

        assert call_ref == "vapi-call-1"
        body = requests[0]
        assert body["phoneNumberId"] == "pn-1"
        assert body["customer"] == {"number": "+15550001111", "name": "Jane"}
        assert body["metadata"] == {"lead_id": "lead-1", "lead_name": "Jane"}
        assert body["assistant"]["firstMessage"] == "Hi Jane"
        await provider.close()

    @pytest.mark.asyncio
    async def test_http_error_raises_provider_error(self):
        """Rejected calls raise ProviderError"""
        transport = httpx.MockTransport(lambda request: httpx.Response(400, json={"error": "bad number"}))
        client = httpx.AsyncClient(base_url="https://api.vapi.ai", transport=transport)
        provider = VapiVoiceProvider(api_key="key", phone_number_id="pn-1", client=client)

        with pytest.raises(ProviderError):
            await provider.place_call("+1", "investment_outreach", {})
        await provider.close()

    def test_parse_end_of_call_report(self):
        """Ended reason, duration and structured outcome are read"""
        provider = VapiVoiceProvider(api_key=None, phone_number_id=None)

        completion = provider.parse_completion({"message": {
            "type": "end-of-call-report",
            "endedReason": "customer-ended-call",
            "durationSeconds": 84.6,
            "call": {"id": "vapi-call-1"},
            "analysis": {"structuredData": {"outcome": "interested"}, "summary": "Wants the deck"},
        }})

        assert completion.call_ref == "vapi-call-1"
        assert completion.provider_status == "completed"
        assert completion.duration_seconds == 84
        assert completion.outcome == ContactOutcome.INTERESTED
        assert completion.notes == "Wants the deck"

    def test_parse_duration_from_timestamps(self):
        """Without a duration field the call timestamps are used"""
        provider = VapiVoiceProvider(api_key=None, phone_number_id=None)

        completion = provider.parse_completion({
            "type": "call-end",
            "call": {
                "id": "c-2",
                "endedReason": "customer-busy",
                "startedAt": "2024-06-05T16:00:00Z",
                "endedAt": "2024-06-05T16:00:12Z",
            },
        })

        assert completion.provider_status == "busy"
        assert completion.duration_seconds == 12
        assert completion.outcome is None

    def test_other_events_ignored(self):
        """Status updates are not completions"""
        provider = VapiVoiceProvider(api_key=None, phone_number_id=None)
        assert provider.parse_completion({"message": {"type": "status-update"}}) is None


class TestSMTPEmailProvider:
    """Tests for SMTP delivery"""

    def _provider(self) -> SMTPEmailProvider:
        return SMTPEmailProvider(
            host="smtp.example.com", user="mailer", password="secret", from_email="outreach@commertize.com",
        )

    def _email(self) -> OutboundEmail:
        return OutboundEmail(
            to="jane@example.com",
            from_email="outreach@commertize.com",
            subject="Hello",
            html="<p>Hello</p>",
            text="Hello",
            reply_to="support@commertize.com",
        )

    def test_build_message(self):
        """Headers and both parts are set"""
        message = self._provider().build_message(self._email())

        assert message["To"] == "jane@example.com"
        assert message["Reply-To"] == "support@commertize.com"
        assert message["Message-ID"].endswith("@commertize.com>")
        assert len(message.get_payload()) == 2

    @pytest.mark.asyncio
    async def test_unconfigured_raises(self):
        """Missing credentials are a configuration error"""
        provider = SMTPEmailProvider(host=None)
        with pytest.raises(SMTPConfigError):
            await provider.send(self._email())

    @pytest.mark.asyncio
    async def test_send(self, monkeypatch):
        """A successful send returns the Message-ID"""
        provider = self._provider()
        sent = []
        monkeypatch.setattr(provider, "_send_sync", lambda sender, to, payload: sent.append((sender, to)))

        result = await provider.send(self._email())

        assert result.accepted
        assert result.message_id.startswith("<")
        assert sent == [("outreach@commertize.com", "jane@example.com")]

    @pytest.mark.asyncio
    async def test_transport_failure_raises_provider_error(self, monkeypatch):
        """SMTP errors become ProviderError"""
        provider = self._provider()

        def fail(sender, to, payload):
            raise smtplib.SMTPServerDisconnected("connection lost")

        monkeypatch.setattr(provider, "_send_sync", fail)

        with pytest.raises(ProviderError):
            await provider.send(self._email())
