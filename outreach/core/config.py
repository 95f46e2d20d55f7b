"""
Configuration Management
Loads settings from YAML files and environment variables

- Settings: secrets and provider credentials from the environment / .env
- ConfigManager: layered YAML (default.yaml -> {env}.yaml) with ${VAR} substitution
- OutreachConfig: typed engine constants (scoring weights, follow-up delays,
  compliance thresholds, schedule) with code defaults for every value
"""
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    environment: str = "development"
    debug: bool = True

    # API Settings
    api_prefix: str = "/api/v1"

    # Lead store
    supabase_url: Optional[str] = None
    supabase_service_key: Optional[str] = None

    # Text intelligence
    groq_api_key: Optional[str] = None
    groq_model: str = "llama-3.3-70b-versatile"

    # Email delivery
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_from_email: Optional[str] = None
    smtp_from_name: str = "Commertize"
    smtp_use_tls: bool = True

    # Voice calling
    vapi_api_key: Optional[str] = None
    vapi_base_url: str = "https://api.vapi.ai"
    vapi_phone_number_id: Optional[str] = None
    vapi_assistant_ids: Dict[str, str] = Field(default_factory=dict)  # script id -> assistant id

    # Scheduler. Cadences must run in exactly one process per deployment: either
    # the outreach-scheduler worker or a single API process with this set.
    scheduler_enabled: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class ScoringConfig(BaseModel):
    """Weights and thresholds for the deterministic lead scorer."""
    base_score: int = 50
    company_bonus: int = 20
    phone_bonus: int = 15
    industry_bonus: int = 10
    industry_bonus_cap: int = 20
    high_fit_industries: List[str] = Field(default_factory=lambda: ["real estate", "investment"])
    referral_bonus: int = 15
    recent_contact_bonus: int = 20
    recent_contact_days: int = 3
    hot_threshold: int = 80
    warm_threshold: int = 60


class ComplianceConfig(BaseModel):
    consent_max_age_days: int = 730
    consent_retention_days: int = 1095
    violation_retention_days: int = 365
    prohibited_phrases: List[str] = Field(default_factory=lambda: [
        "guaranteed return",
        "guaranteed profit",
        "risk-free investment",
        "guaranteed income",
        "no risk",
    ])


class DispatchConfig(BaseModel):
    email_delay_seconds: float = Field(default=1.0, ge=0.0)
    call_delay_seconds: float = Field(default=3.0, ge=0.0)
    campaign_batch_size: int = Field(default=10, ge=1)
    call_script_top_n: int = Field(default=5, ge=0)
    auto_dial_hot_leads: bool = False


class TicketConfig(BaseModel):
    escalation_age_hours: int = 48
    archive_closed_after_days: int = 30


class LeadConfig(BaseModel):
    archive_after_days: int = 90
    hot_lead_stale_hours: int = 24


class ScheduleConfig(BaseModel):
    timezone: str = "America/Los_Angeles"
    morning: str = "08:00"
    afternoon: str = "14:00"
    weekly_day: str = "fri"
    weekly_time: str = "17:00"


class TextIntelligenceConfig(BaseModel):
    timeout_seconds: float = Field(default=10.0, gt=0.0)


DEFAULT_FOLLOW_UP_DAYS: Dict[str, int] = {
    "connected": 7,
    "voicemail": 3,
    "no_answer": 1,
    "busy": 1,
    "interested": 3,
    "callback_requested": 7,
}


class OutreachConfig(BaseModel):
    """
    Engine constants.

    The follow-up table and scoring weights carry no documented business
    rationale; they are kept as configuration rather than re-derived.
    """
    company_name: str = "Commertize"
    support_email: str = "support@commertize.com"
    report_recipient: Optional[str] = None
    public_base_url: str = "https://commertize.com"
    inbox_addresses: List[str] = Field(default_factory=lambda: [
        "support@commertize.com",
        "hello@commertize.com",
        "info@commertize.com",
    ])

    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    follow_up_days: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_FOLLOW_UP_DAYS))
    compliance: ComplianceConfig = Field(default_factory=ComplianceConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    tickets: TicketConfig = Field(default_factory=TicketConfig)
    leads: LeadConfig = Field(default_factory=LeadConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    text_intelligence: TextIntelligenceConfig = Field(default_factory=TextIntelligenceConfig)

    @property
    def unsubscribe_base_url(self) -> str:
        return f"{self.public_base_url.rstrip('/')}/unsubscribe"

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "OutreachConfig":
        """Create from a config mapping (YAML load)."""
        if not data:
            return cls()
        return cls(**{key: value for key, value in data.items() if value is not None})


class ConfigManager:
    """Manages loading and merging configuration from multiple sources"""

    def __init__(self, env: str = "development", config_dir: Optional[Path] = None):
        self.env = env
        self.config_dir = config_dir or Path(__file__).parent.parent.parent / "config"
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration files in order of precedence"""
        default_path = self.config_dir / "default.yaml"
        if default_path.exists():
            self._config = self._load_yaml(default_path)

        env_path = self.config_dir / f"{self.env}.yaml"
        if env_path.exists():
            env_config = self._load_yaml(env_path)
            self._deep_merge(self._config, env_config)

        self._substitute_env_vars(self._config)

    def _load_yaml(self, path: Path) -> Dict:
        """Load YAML file"""
        with open(path, 'r') as f:
            return yaml.safe_load(f) or {}

    def _substitute_env_vars(self, config: Dict) -> None:
        """Replace ${VAR_NAME} with environment variable values (None when unset)"""
        for key, value in config.items():
            if isinstance(value, dict):
                self._substitute_env_vars(value)
            elif isinstance(value, str) and value.startswith("${") and value.endswith("}"):
                env_var = value[2:-1]
                config[key] = os.getenv(env_var)

    def _deep_merge(self, base: Dict, override: Dict) -> None:
        """Recursively merge override into base"""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation
        Example: config.get("outreach.scoring.base_score") -> 50
        """
        keys = key_path.split('.')
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def get_outreach_config(self) -> OutreachConfig:
        """Build the typed engine configuration."""
        return OutreachConfig.from_dict(self.get("outreach", {}))


_settings: Optional[Settings] = None
_outreach_config: Optional[OutreachConfig] = None


def get_settings() -> Settings:
    """Get or create Settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def get_outreach_config() -> OutreachConfig:
    """Get or create OutreachConfig instance."""
    global _outreach_config
    if _outreach_config is None:
        _outreach_config = ConfigManager(get_settings().environment).get_outreach_config()
    return _outreach_config
