"""
Tests for Core Functionality
Configuration loading and provider validation
"""
from pathlib import Path

import pytest

from outreach.core.config import ConfigManager, OutreachConfig, Settings
from outreach.core.validation import ProviderValidator, validate_providers_on_startup

CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"


def _settings(**overrides) -> Settings:
    values = {
        "supabase_url": "https://db.example.com",
        "supabase_service_key": "service-key",
        "smtp_host": "smtp.example.com",
        "smtp_user": "mailer",
        "smtp_password": "secret",
        "smtp_from_email": "outreach@commertize.com",
        "groq_api_key": None,
        "vapi_api_key": None,
        "vapi_phone_number_id": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestConfigManager:
    """Tests for layered YAML configuration"""

    def test_default_yaml_matches_code_defaults(self):
        """The shipped default.yaml builds the standard engine constants"""
        config = ConfigManager("development", CONFIG_DIR).get_outreach_config()

        assert config.scoring.hot_threshold == 80
        assert config.scoring.warm_threshold == 60
        assert config.schedule.timezone == "America/Los_Angeles"
        assert "support@commertize.com" in config.inbox_addresses

    def test_env_override_and_substitution(self, tmp_path, monkeypatch):
        """{env}.yaml is deep-merged and ${VAR} values are substituted"""
        (tmp_path / "default.yaml").write_text(
            "outreach:\n"
            "  report_recipient: \"${TEST_REPORT_RECIPIENT}\"\n"
            "  scoring:\n"
            "    base_score: 50\n"
            "    hot_threshold: 80\n"
        )
        (tmp_path / "staging.yaml").write_text(
            "outreach:\n"
            "  scoring:\n"
            "    hot_threshold: 85\n"
        )
        monkeypatch.setenv("TEST_REPORT_RECIPIENT", "ops@example.com")

        manager = ConfigManager("staging", tmp_path)
        config = manager.get_outreach_config()

        assert manager.get("outreach.scoring.base_score") == 50
        assert manager.get("outreach.scoring.missing", "fallback") == "fallback"
        assert config.scoring.hot_threshold == 85
        assert config.report_recipient == "ops@example.com"

    def test_unset_env_var_keeps_code_default(self, tmp_path, monkeypatch):
        """An unset ${VAR} falls back to the model default"""
        (tmp_path / "default.yaml").write_text("outreach:\n  company_name: \"${TEST_UNSET_COMPANY}\"\n")
        monkeypatch.delenv("TEST_UNSET_COMPANY", raising=False)

        config = ConfigManager("development", tmp_path).get_outreach_config()

        assert config.company_name == OutreachConfig().company_name

    def test_missing_directory_gives_defaults(self, tmp_path):
        """No YAML at all still yields a usable config"""
        config = ConfigManager("development", tmp_path / "nowhere").get_outreach_config()
        assert config == OutreachConfig()


class TestProviderValidation:
    """Tests for startup provider validation"""

    def test_all_required_present(self):
        """Missing optional providers are warnings outside strict mode"""
        all_valid, results = ProviderValidator(_settings()).validate_all()

        assert all_valid
        warnings = [r for r in results if r.message.startswith("WARNING")]
        assert {r.provider for r in warnings} == {"llm", "voice"}

    def test_strict_mode_turns_warnings_into_errors(self):
        """Production validation requires the optional providers too"""
        all_valid, _ = ProviderValidator(_settings(), strict=True).validate_all()
        assert not all_valid

    def test_missing_required_raises(self):
        """A missing SMTP host fails startup with a summary"""
        with pytest.raises(RuntimeError) as exc:
            validate_providers_on_startup(_settings(smtp_host=None))
        assert "SMTP_HOST" in str(exc.value)


class TestSchedulerSetting:
    """Tests for where cadences run"""

    def test_api_process_does_not_schedule_by_default(self, monkeypatch):
        """Only the worker runs cadences unless the API is opted in"""
        monkeypatch.delenv("SCHEDULER_ENABLED", raising=False)
        assert _settings().scheduler_enabled is False

    def test_api_process_opt_in(self, monkeypatch):
        """SCHEDULER_ENABLED=true moves the cadences into the API process"""
        monkeypatch.setenv("SCHEDULER_ENABLED", "true")
        assert _settings().scheduler_enabled is True
