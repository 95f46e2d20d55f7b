"""
Text Intelligence Factory
"""
import logging
from typing import Dict, Type

from outreach.core.config import Settings
from outreach.domain.interfaces.text_intelligence import TextIntelligence
from outreach.infrastructure.llm.deterministic import DeterministicTextIntelligence
from outreach.infrastructure.llm.groq import GroqTextIntelligence

logger = logging.getLogger(__name__)


class TextIntelligenceFactory:
    """Factory for creating text intelligence instances"""

    _providers: Dict[str, Type[TextIntelligence]] = {}

    @classmethod
    def create(cls, provider_name: str, **kwargs) -> TextIntelligence:
        """Create a text intelligence instance"""
        if provider_name not in cls._providers:
            available = ", ".join(cls._providers.keys()) if cls._providers else "None"
            raise ValueError(f"Unknown text intelligence provider: {provider_name}. Available: {available}")

        return cls._providers[provider_name](**kwargs)

    @classmethod
    def register(cls, name: str, provider_class: Type[TextIntelligence]) -> None:
        """Register a provider"""
        cls._providers[name] = provider_class


TextIntelligenceFactory.register("groq", GroqTextIntelligence)
TextIntelligenceFactory.register("deterministic", DeterministicTextIntelligence)


def create_text_intelligence(settings: Settings, company_name: str = "Commertize") -> TextIntelligence:
    """
    Select the implementation once at startup.

    Groq when an API key is configured, otherwise the deterministic rules.
    """
    if settings.groq_api_key:
        logger.info(f"Text intelligence: groq ({settings.groq_model})")
        return TextIntelligenceFactory.create(
            "groq",
            api_key=settings.groq_api_key,
            model=settings.groq_model,
            company_name=company_name,
        )

    logger.info("Text intelligence: deterministic (GROQ_API_KEY not set)")
    return TextIntelligenceFactory.create("deterministic", company_name=company_name)
