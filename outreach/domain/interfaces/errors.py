"""
Collaborator errors
"""


class ProviderError(Exception):
    """Transient failure of an external collaborator (email, voice)."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")
