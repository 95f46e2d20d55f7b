"""
Tests for the Email and Voice Dispatchers
"""
from datetime import timedelta

import pytest

from outreach.domain.interfaces.errors import ProviderError
from outreach.domain.models.consent import ConsentPreferences
from outreach.domain.models.contact_attempt import CampaignType, ContactChannel, ContactOutcome
from outreach.domain.models.dispatch import CallCompletion
from outreach.domain.models.lead import Lead, LeadStatus
from outreach.services.voice_dispatcher import outcome_for_completion


async def _lead_with_consent(engine, repository, email="jane@example.com", phone="+15550001111", **flags):
    lead = await repository.upsert(Lead(email=email, name="Jane", company="Acme Capital", phone=phone))
    if flags:
        await engine.consent.record_opt_in(email, ConsentPreferences(**flags))
    return lead


class TestEmailDispatcher:
    """Tests for outbound email"""

    @pytest.mark.asyncio
    async def test_send_to_lead_records_connected(self, engine, repository, email_provider, clock):
        """A sent campaign email records a connected attempt"""
        lead = await _lead_with_consent(engine, repository, email_marketing=True)

        result = await engine.email.send_to_lead(lead, CampaignType.INVESTMENT)

        assert result.success
        assert result.provider_ref == "<msg-1@test>"
        sent = email_provider.sent[0]
        assert sent.to == "jane@example.com"
        assert "unsubscribe?email=jane%40example.com" in sent.html
        attempts = await repository.list_contact_attempts(lead.id)
        assert [(a.channel, a.outcome) for a in attempts] == [(ContactChannel.EMAIL, ContactOutcome.CONNECTED)]
        assert attempts[0].follow_up_at == clock.now() + timedelta(days=7)
        assert (await repository.get(lead.id)).status == LeadStatus.CONTACTED

    @pytest.mark.asyncio
    async def test_blocked_send_records_nothing(self, engine, repository, email_provider):
        """No consent blocks the send and persists the violation only"""
        lead = await _lead_with_consent(engine, repository)

        result = await engine.email.send_to_lead(lead, CampaignType.INVESTMENT)

        assert result.blocked
        assert not result.success
        assert email_provider.sent == []
        assert repository.attempts == []
        assert {v.rule_id for v in repository.violations} == {"GDPR_EMAIL_CONSENT"}
        assert (await repository.get(lead.id)).status == LeadStatus.NEW

    @pytest.mark.asyncio
    async def test_provider_failure_records_disconnected(self, engine, repository, email_provider):
        """A transport failure records a disconnected attempt"""
        lead = await _lead_with_consent(engine, repository, email_marketing=True)
        email_provider.fail_with = ProviderError("smtp", "connection refused")

        result = await engine.email.send_to_lead(lead, CampaignType.PARTNERSHIP)

        assert not result.success
        assert not result.blocked
        attempts = await repository.list_contact_attempts(lead.id)
        assert attempts[0].outcome == ContactOutcome.DISCONNECTED
        assert attempts[0].follow_up_at is None

    @pytest.mark.asyncio
    async def test_campaign_is_sequential_with_delay(self, engine, repository, config):
        """Sends are spaced by the configured delay, not before the first"""
        config.dispatch.email_delay_seconds = 2.0
        leads = [
            await _lead_with_consent(engine, repository, email=f"lead{i}@example.com", email_marketing=True)
            for i in range(3)
        ]

        results = await engine.email.send_campaign(leads, CampaignType.DEMO)

        assert [r.success for r in results] == [True, True, True]
        assert engine.email._sleep.await_count == 2
        engine.email._sleep.assert_awaited_with(2.0)

    @pytest.mark.asyncio
    async def test_send_internal_goes_to_report_recipient(self, engine, email_provider):
        """Internal mail is transactional and addressed to the report recipient"""
        result = await engine.email.send_internal(
            "Weekly", '<p>Report</p><a href="https://commertize.com/unsubscribe">unsubscribe</a>'
        )
        assert result.success
        assert email_provider.sent[0].to == "ops@commertize.com"


class TestOutcomeForCompletion:
    """Tests for mapping provider completions to outcomes"""

    @pytest.mark.parametrize("status,duration,expected", [
        ("completed", 10, ContactOutcome.CONNECTED),
        ("no-answer", 0, ContactOutcome.NO_ANSWER),
        ("no_answer", 0, ContactOutcome.NO_ANSWER),
        ("busy", 0, ContactOutcome.BUSY),
        ("voicemail", 20, ContactOutcome.VOICEMAIL),
        ("failed", 0, ContactOutcome.DISCONNECTED),
        ("voicemail", 31, ContactOutcome.CONNECTED),
        ("something-new", 5, ContactOutcome.NO_ANSWER),
    ])
    def test_mapping(self, status, duration, expected):
        """Long calls are connected, otherwise the status decides"""
        completion = CallCompletion(call_ref="c", provider_status=status, duration_seconds=duration)
        assert outcome_for_completion(completion) == expected

    def test_explicit_outcome_wins(self):
        """A provider-reported outcome overrides duration and status"""
        completion = CallCompletion(
            call_ref="c", provider_status="completed", duration_seconds=200,
            outcome=ContactOutcome.CALLBACK_REQUESTED,
        )
        assert outcome_for_completion(completion) == ContactOutcome.CALLBACK_REQUESTED


class TestVoiceDispatcher:
    """Tests for outbound calls"""

    @pytest.mark.asyncio
    async def test_place_call_stores_placement(self, engine, repository, voice_provider):
        """A placed call is correlated to its lead"""
        lead = await _lead_with_consent(engine, repository, call_marketing=True)

        result = await engine.voice.place_call(lead, CampaignType.INVESTMENT)

        assert result.success
        assert result.provider_ref == "call-1"
        placement = await repository.get_call_placement("call-1")
        assert placement.lead_id == lead.id
        assert placement.script_id == "investment_outreach"
        call = voice_provider.calls[0]
        assert call["to"] == "+15550001111"
        assert call["metadata"]["lead_id"] == lead.id
        assert "Jane" in call["metadata"]["first_message"]
        assert repository.attempts == []

    @pytest.mark.asyncio
    async def test_call_without_consent_is_blocked(self, engine, repository, voice_provider):
        """Email consent does not allow calls"""
        lead = await _lead_with_consent(engine, repository, email_marketing=True)

        result = await engine.voice.place_call(lead, CampaignType.INVESTMENT)

        assert result.blocked
        assert voice_provider.calls == []
        assert repository.attempts == []

    @pytest.mark.asyncio
    async def test_no_phone(self, engine, repository, voice_provider):
        """Leads without a phone are skipped"""
        lead = await _lead_with_consent(engine, repository, phone=None, call_marketing=True)

        result = await engine.voice.place_call(lead, CampaignType.INVESTMENT)

        assert not result.success
        assert result.error == "Lead has no phone number"
        assert voice_provider.calls == []

    @pytest.mark.asyncio
    async def test_provider_failure_records_disconnected(self, engine, repository, voice_provider):
        """A rejected call records a disconnected attempt"""
        lead = await _lead_with_consent(engine, repository, call_marketing=True)
        voice_provider.fail = True

        result = await engine.voice.place_call(lead, CampaignType.INVESTMENT)

        assert not result.success
        attempts = await repository.list_contact_attempts(lead.id)
        assert attempts[0].outcome == ContactOutcome.DISCONNECTED

    @pytest.mark.asyncio
    async def test_completion_records_outcome(self, engine, repository):
        """The completion webhook records the mapped outcome"""
        lead = await _lead_with_consent(engine, repository, call_marketing=True)
        await engine.voice.place_call(lead, CampaignType.INVESTMENT)

        attempt = await engine.voice.handle_call_completion(
            CallCompletion(call_ref="call-1", provider_status="completed", duration_seconds=95)
        )

        assert attempt.outcome == ContactOutcome.CONNECTED
        assert attempt.duration_seconds == 95
        assert attempt.campaign_type == CampaignType.INVESTMENT
        assert (await repository.get(lead.id)).status == LeadStatus.CONTACTED

    @pytest.mark.asyncio
    async def test_redelivered_completion_recorded_once(self, engine, repository):
        """A retried end-of-call webhook does not add a second attempt"""
        lead = await _lead_with_consent(engine, repository, call_marketing=True)
        await engine.voice.place_call(lead, CampaignType.INVESTMENT)
        completion = CallCompletion(call_ref="call-1", provider_status="completed", duration_seconds=95)

        first = await engine.voice.handle_call_completion(completion)
        second = await engine.voice.handle_call_completion(completion)

        assert len(repository.attempts) == 1
        assert second.id == first.id
        assert engine.outcome_tracker.call_stats(repository.attempts).total == 1

    @pytest.mark.asyncio
    async def test_unknown_call_ref(self, engine, repository):
        """Completions for unknown calls are skipped"""
        attempt = await engine.voice.handle_call_completion(CallCompletion(call_ref="nope"))
        assert attempt is None
        assert repository.attempts == []

    def test_generate_scripts_skips_leads_without_phone(self, engine):
        """Scripts are only produced for callable leads"""
        leads = [
            Lead(email="a@example.com", phone="+15550001111"),
            Lead(email="b@example.com"),
        ]
        scripts = engine.voice.generate_scripts(leads, CampaignType.DEMO)
        assert len(scripts) == 1
