"""
Outreach Engine
Wires repository, providers and domain services into one container

Built once per process (API app or scheduler worker) and shared by the
HTTP endpoints and the orchestration scheduler.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from outreach.core.clock import Clock, SystemClock
from outreach.core.config import OutreachConfig, Settings, get_outreach_config, get_settings
from outreach.domain.interfaces.email_provider import EmailProvider
from outreach.domain.interfaces.lead_repository import LeadRepository
from outreach.domain.interfaces.text_intelligence import TextIntelligence
from outreach.domain.interfaces.voice_provider import VoiceProvider
from outreach.domain.services.call_script_manager import CallScriptManager
from outreach.domain.services.compliance_gate import ComplianceGate
from outreach.domain.services.email_template_manager import EmailTemplateManager
from outreach.domain.services.inbound_email import InboundEmailNormalizer
from outreach.domain.services.lead_locks import LeadLockRegistry
from outreach.domain.services.outcome_tracker import OutcomeTracker
from outreach.domain.services.scoring_engine import ScoringEngine
from outreach.infrastructure.email.smtp import SMTPEmailProvider
from outreach.infrastructure.llm.factory import create_text_intelligence
from outreach.infrastructure.storage.memory_repository import InMemoryLeadRepository
from outreach.infrastructure.storage.supabase_repository import SupabaseLeadRepository, get_supabase
from outreach.infrastructure.voice.vapi import VapiVoiceProvider
from outreach.services.consent_service import ConsentService
from outreach.services.email_dispatcher import EmailDispatcher
from outreach.services.inbound_email_processor import InboundEmailProcessor
from outreach.services.voice_dispatcher import VoiceDispatcher

logger = logging.getLogger(__name__)


class OutreachEngine:
    """
    Service container.

    All components share one repository, one clock and one per-lead lock
    registry so that webhook handlers and cadence batches serialize on the
    same leads.
    """

    def __init__(
        self,
        repository: LeadRepository,
        email_provider: EmailProvider,
        voice_provider: VoiceProvider,
        text_intelligence: Optional[TextIntelligence] = None,
        config: Optional[OutreachConfig] = None,
        clock: Optional[Clock] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or OutreachConfig()
        self.clock = clock or SystemClock()
        self.repository = repository
        self.email_provider = email_provider
        self.voice_provider = voice_provider
        self.text_intelligence = text_intelligence

        self.locks = LeadLockRegistry()
        self.gate = ComplianceGate(self.config.compliance)
        self.scoring = ScoringEngine(
            self.config.scoring,
            text_intelligence=text_intelligence,
            timeout_seconds=self.config.text_intelligence.timeout_seconds,
        )
        self.outcome_tracker = OutcomeTracker(
            repository=repository,
            locks=self.locks,
            follow_up_days=self.config.follow_up_days,
            clock=self.clock,
        )
        self.consent = ConsentService(repository, self.config.compliance, locks=self.locks, clock=self.clock)

        self.templates = EmailTemplateManager()
        self.scripts = CallScriptManager(company_name=self.config.company_name)

        self.email = EmailDispatcher(
            provider=email_provider,
            repository=repository,
            gate=self.gate,
            outcome_tracker=self.outcome_tracker,
            config=self.config,
            template_manager=self.templates,
            clock=self.clock,
            sleep=sleep,
        )
        self.voice = VoiceDispatcher(
            provider=voice_provider,
            repository=repository,
            gate=self.gate,
            outcome_tracker=self.outcome_tracker,
            script_manager=self.scripts,
            config=self.config,
            clock=self.clock,
            sleep=sleep,
        )
        self.inbound = InboundEmailProcessor(
            normalizer=InboundEmailNormalizer(self.config.inbox_addresses),
            text_intelligence=text_intelligence,
            repository=repository,
            email_dispatcher=self.email,
            config=self.config,
            clock=self.clock,
        )

    async def close(self) -> None:
        await self.voice_provider.close()


def create_repository(settings: Settings) -> LeadRepository:
    """Supabase when configured, otherwise a process-local store."""
    if settings.supabase_url and settings.supabase_service_key:
        return SupabaseLeadRepository(get_supabase(settings))
    logger.warning("Supabase not configured - using in-memory lead repository (data is not persisted)")
    return InMemoryLeadRepository()


def build_engine(
    settings: Optional[Settings] = None,
    config: Optional[OutreachConfig] = None,
    repository: Optional[LeadRepository] = None,
    clock: Optional[Clock] = None,
) -> OutreachEngine:
    settings = settings or get_settings()
    config = config or get_outreach_config()

    return OutreachEngine(
        repository=repository or create_repository(settings),
        email_provider=SMTPEmailProvider.from_settings(settings),
        voice_provider=VapiVoiceProvider.from_settings(settings),
        text_intelligence=create_text_intelligence(settings, config.company_name),
        config=config,
        clock=clock,
    )


_engine: Optional[OutreachEngine] = None


def get_engine() -> OutreachEngine:
    """Get or create the process-wide OutreachEngine."""
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine
