"""Tests for configuration loading and provider resolution."""

from __future__ import annotations

import pytest
import yaml
from pydantic import ValidationError

from ddaloop.config.settings import LLMProvider, ProviderConfig, Settings, VariableBounds


class TestSettingsLoad:
    def test_missing_file_gives_defaults(self, tmp_path):
        settings = Settings.load(tmp_path / "absent.yaml")
        assert settings.trigger.deaths_before_first_adjustment == 2
        assert settings.trigger.min_seconds_between_adjustments == 5.0
        assert settings.policy.example_buffer_size == 5
        assert settings.llm.timeout_seconds == 10.0

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({
            "llm": {"provider": "claude", "model": "claude-test"},
            "trigger": {"deaths_before_first_adjustment": 3},
            "variables": {"runSpeed": {"min": 4.0, "max": 9.0}},
            "data_dir": str(tmp_path / "data"),
        }))
        settings = Settings.load(path)
        assert settings.llm.provider is LLMProvider.CLAUDE
        assert settings.trigger.deaths_before_first_adjustment == 3
        assert settings.variables["runSpeed"].max == 9.0
        assert settings.session_log_dir == tmp_path / "data" / "logs"

    def test_empty_yaml_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert Settings.load(path) == Settings()

    def test_save_round_trip(self, tmp_path):
        settings = Settings(data_dir=tmp_path, log_level="DEBUG")
        path = settings.save()
        assert path == tmp_path / "config.yaml"
        assert Settings.load(path).log_level == "DEBUG"

    def test_inverted_bounds_rejected(self):
        with pytest.raises(ValidationError):
            VariableBounds(min=2.0, max=1.0)


class TestProviderConfig:
    def test_default_model_per_provider(self):
        assert ProviderConfig().get_model() == "gemini-2.0-flash"
        assert ProviderConfig(provider="claude").get_model().startswith("claude-")

    def test_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "from-env")
        assert ProviderConfig().get_api_key() == "from-env"
        assert ProviderConfig(api_key="inline").get_api_key() == "inline"

    def test_key_env_follows_provider(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "g")
        assert ProviderConfig(provider="claude").get_api_key() is None

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("DDALOOP_PROVIDER", "CLAUDE")
        monkeypatch.setenv("DDALOOP_MODEL", "claude-override")
        config = ProviderConfig(model="gemini-pro")
        assert config.get_provider() is LLMProvider.CLAUDE
        assert config.get_model() == "claude-override"

    def test_unknown_provider_override_falls_back(self, monkeypatch):
        monkeypatch.setenv("DDALOOP_PROVIDER", "openai")
        config = ProviderConfig(provider="claude")
        assert config.get_provider() is LLMProvider.CLAUDE
        assert config.get_model() == "claude-sonnet-4-5-20250929"

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            ProviderConfig(timeout_seconds=0)
