"""
Voice Provider Interface
Abstract outbound calling provider
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from outreach.domain.models.dispatch import CallCompletion


class VoiceProvider(ABC):
    """
    Places outbound calls.

    place_call returns as soon as the provider accepts the call; the outcome
    arrives later through the call-completion webhook.
    """

    @abstractmethod
    async def initialize(self) -> None:
        pass

    @abstractmethod
    async def place_call(
        self,
        to_number: str,
        script_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Place an outbound call.

        Returns:
            Provider call reference

        Raises:
            ProviderError: If the provider rejects the call
        """
        pass

    @abstractmethod
    def parse_completion(self, payload: Dict[str, Any]) -> Optional[CallCompletion]:
        """Parse a completion webhook payload; None if it is not a completion event."""
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        pass
