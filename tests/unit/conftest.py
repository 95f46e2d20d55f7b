"""
Shared fixtures for unit tests
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest
from unittest.mock import AsyncMock

from outreach.core.clock import Clock
from outreach.core.config import DispatchConfig, OutreachConfig
from outreach.domain.interfaces.email_provider import EmailProvider
from outreach.domain.interfaces.errors import ProviderError
from outreach.domain.interfaces.voice_provider import VoiceProvider
from outreach.domain.models.dispatch import CallCompletion, EmailSendResult, OutboundEmail
from outreach.infrastructure.storage.memory_repository import InMemoryLeadRepository
from outreach.services.engine import OutreachEngine


# Wednesday 2024-06-05 16:00 UTC (09:00 in Los Angeles)
FIXED_NOW = datetime(2024, 6, 5, 16, 0, tzinfo=timezone.utc)


class FrozenClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def set(self, now: datetime) -> None:
        self.current = now


class FakeEmailProvider(EmailProvider):
    """Records outbound email; can be told to fail."""

    def __init__(self):
        self.sent: List[OutboundEmail] = []
        self.fail_with: Optional[Exception] = None

    async def send(self, email: OutboundEmail) -> EmailSendResult:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(email)
        return EmailSendResult(accepted=True, message_id=f"<msg-{len(self.sent)}@test>")

    @property
    def name(self) -> str:
        return "fake-email"


class FakeVoiceProvider(VoiceProvider):
    """Returns sequential call refs; can be told to fail."""

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self.fail = False

    async def initialize(self) -> None:
        pass

    async def place_call(self, to_number: str, script_id: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        if self.fail:
            raise ProviderError(self.name, "line busy")
        self.calls.append({"to": to_number, "script_id": script_id, "metadata": metadata or {}})
        return f"call-{len(self.calls)}"

    def parse_completion(self, payload: Dict[str, Any]) -> Optional[CallCompletion]:
        if payload.get("type") != "call-end":
            return None
        return CallCompletion(
            call_ref=payload["call_ref"],
            provider_status=payload.get("status", "unknown"),
            duration_seconds=payload.get("duration", 0),
        )

    async def close(self) -> None:
        pass

    @property
    def name(self) -> str:
        return "fake-voice"


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def repository():
    return InMemoryLeadRepository()


@pytest.fixture
def email_provider():
    return FakeEmailProvider()


@pytest.fixture
def voice_provider():
    return FakeVoiceProvider()


@pytest.fixture
def config():
    return OutreachConfig(
        report_recipient="ops@commertize.com",
        dispatch=DispatchConfig(email_delay_seconds=0, call_delay_seconds=0),
    )


@pytest.fixture
def engine(repository, email_provider, voice_provider, config, clock):
    return OutreachEngine(
        repository=repository,
        email_provider=email_provider,
        voice_provider=voice_provider,
        text_intelligence=None,
        config=config,
        clock=clock,
        sleep=AsyncMock(),
    )
