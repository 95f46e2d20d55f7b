"""
Email Provider Interface
Abstract outbound email transport
"""
from abc import ABC, abstractmethod

from outreach.domain.models.dispatch import EmailSendResult, OutboundEmail


class EmailProvider(ABC):
    """Sends one rendered email. Raises ProviderError on transport failure."""

    @abstractmethod
    async def send(self, email: OutboundEmail) -> EmailSendResult:
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        pass
