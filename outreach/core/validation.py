"""
Provider Validation Module
Validates collaborator configurations on startup

Email delivery and the lead store are required; text intelligence and voice
calling degrade (deterministic fallback / simulated calls) when unset.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from outreach.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of a configuration validation check."""
    provider: str
    setting: str
    is_valid: bool
    message: str


class ProviderValidator:
    """
    Validates provider configurations at startup.

    Ensures required credentials are present before the engine starts
    dispatching outreach.
    """

    # (settings attribute, env var name, description)
    REQUIRED_SETTINGS = {
        "database": [
            ("supabase_url", "SUPABASE_URL", "Supabase lead store"),
            ("supabase_service_key", "SUPABASE_SERVICE_KEY", "Supabase lead store"),
        ],
        "email": [
            ("smtp_host", "SMTP_HOST", "SMTP email delivery"),
            ("smtp_user", "SMTP_USER", "SMTP email delivery"),
            ("smtp_password", "SMTP_PASSWORD", "SMTP email delivery"),
            ("smtp_from_email", "SMTP_FROM_EMAIL", "SMTP email delivery"),
        ],
    }

    OPTIONAL_SETTINGS = {
        "llm": [("groq_api_key", "GROQ_API_KEY", "Groq text intelligence (deterministic fallback)")],
        "voice": [
            ("vapi_api_key", "VAPI_API_KEY", "Vapi voice calling (calls simulated)"),
            ("vapi_phone_number_id", "VAPI_PHONE_NUMBER_ID", "Vapi outbound phone number"),
        ],
    }

    def __init__(self, settings: Settings, strict: bool = False):
        self.settings = settings
        self.strict = strict
        self.results: List[ValidationResult] = []

    def validate_all(self) -> Tuple[bool, List[ValidationResult]]:
        """
        Validate all provider configurations.

        Returns:
            Tuple of (all_valid, list of results)
        """
        self.results = []

        for provider, settings_list in self.REQUIRED_SETTINGS.items():
            for attr, env_var, description in settings_list:
                if not getattr(self.settings, attr, None):
                    self._add_error(provider, env_var, f"{description} requires {env_var} to be set")
                else:
                    self._add_success(provider, env_var, f"{description} configured")

        for provider, settings_list in self.OPTIONAL_SETTINGS.items():
            for attr, env_var, description in settings_list:
                if not getattr(self.settings, attr, None):
                    self._add_warning(provider, env_var, f"{description} not configured")
                else:
                    self._add_success(provider, env_var, f"{description} configured")

        all_valid = all(r.is_valid for r in self.results)
        return all_valid, self.results

    def _add_success(self, provider: str, setting: str, message: str):
        self.results.append(ValidationResult(provider, setting, True, message))

    def _add_error(self, provider: str, setting: str, message: str):
        self.results.append(ValidationResult(provider, setting, False, message))

    def _add_warning(self, provider: str, setting: str, message: str):
        self.results.append(ValidationResult(
            provider=provider,
            setting=setting,
            is_valid=not self.strict,  # Warnings become errors in strict mode
            message=f"WARNING: {message}"
        ))

    def log_results(self):
        """Log all validation results."""
        for r in self.results:
            if not r.is_valid:
                logger.error(f"  ✗ [{r.provider}] {r.message}")
            elif "WARNING" in r.message:
                logger.warning(f"  ⚠ [{r.provider}] {r.message}")
            else:
                logger.info(f"  ✓ [{r.provider}] {r.message}")

    def get_error_summary(self) -> Optional[str]:
        """Get summary of errors for exception message."""
        errors = [r for r in self.results if not r.is_valid]
        if not errors:
            return None

        lines = ["Provider configuration errors:"]
        for r in errors:
            lines.append(f"  - {r.setting}: {r.message}")
        return "\n".join(lines)


def validate_providers_on_startup(settings: Settings, strict: bool = False) -> None:
    """
    Validate all providers at startup.

    Raises:
        RuntimeError: If required configuration is missing
    """
    validator = ProviderValidator(settings, strict=strict)
    all_valid, _ = validator.validate_all()
    validator.log_results()

    if not all_valid:
        raise RuntimeError(validator.get_error_summary())

    logger.info("All provider configurations validated successfully")
