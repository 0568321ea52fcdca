"""
Unit tests for configuration module.
"""

import pytest
from pathlib import Path

from cursor_automation.config import (
    AutomationConfig,
    ConfigurationError,
    InputConfig,
    InstanceConfig,
    RetryConfig,
    SecurityConfig,
    load_config,
    save_config,
)
from cursor_automation.security import DEFAULT_ENV_ALLOWLIST


class TestInstanceConfig:
    """Tests for InstanceConfig."""

    def test_defaults(self):
        config = InstanceConfig()
        assert config.max_instances == 10
        assert config.window_poll_interval_ms == 500
        assert config.window_poll_attempts == 10
        assert config.termination_grace_seconds == 5.0
        assert config.executable_path is None
        assert config.env_allowlist == list(DEFAULT_ENV_ALLOWLIST)

    def test_max_instances_capped_by_policy(self):
        with pytest.raises(ValueError):
            InstanceConfig(max_instances=11)
        with pytest.raises(ValueError):
            InstanceConfig(max_instances=0)

    def test_env_allowlist_names_validated(self):
        assert InstanceConfig(env_allowlist=["PATH", "MY_VAR"]).env_allowlist == ["PATH", "MY_VAR"]
        with pytest.raises(ValueError):
            InstanceConfig(env_allowlist=["PATH; rm"])


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_defaults(self):
        config = RetryConfig()
        assert config.max_attempts == 3
        assert config.delay_ms == 500
        assert config.operation_timeout_seconds == 30.0

    def test_bounds(self):
        with pytest.raises(ValueError):
            RetryConfig(max_attempts=0)


class TestAutomationConfig:
    """Tests for the root configuration."""

    def test_defaults(self):
        config = AutomationConfig()
        assert isinstance(config.instances, InstanceConfig)
        assert isinstance(config.retry, RetryConfig)
        assert isinstance(config.input, InputConfig)
        assert isinstance(config.security, SecurityConfig)
        assert config.log_level == "INFO"

    def test_invalid_log_level(self):
        with pytest.raises(ValueError):
            AutomationConfig(log_level="VERBOSE")

    def test_poll_budget_consistency(self):
        with pytest.raises(ValueError, match="polling budget"):
            AutomationConfig(
                instances=InstanceConfig(window_poll_interval_ms=5000, window_poll_attempts=100),
                retry=RetryConfig(operation_timeout_seconds=1.0),
            )


class TestLoadConfig:
    """Tests for load_config and save_config."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in (
            "CURSOR_AUTOMATION_EXECUTABLE",
            "CURSOR_AUTOMATION_MAX_INSTANCES",
            "CURSOR_AUTOMATION_LOG_LEVEL",
        ):
            monkeypatch.delenv(name, raising=False)

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Config file not found"):
            load_config(str(tmp_path / "nope.yaml"))

    def test_defaults_when_default_file_absent(self, tmp_path, monkeypatch):
        monkeypatch.setattr(
            "cursor_automation.config.get_default_config_path",
            lambda: tmp_path / "config.yaml",
        )
        assert load_config() == AutomationConfig()

    def test_yaml_values(self, temp_file):
        path = temp_file(
            "partial.yaml",
            "instances:\n  max_instances: 3\nretry:\n  delay_ms: 100\n",
        )
        config = load_config(str(path))
        assert config.instances.max_instances == 3
        assert config.retry.delay_ms == 100
        assert config.retry.max_attempts == 3

    def test_invalid_yaml(self, temp_file):
        path = temp_file("broken.yaml", "instances: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(str(path))

    def test_invalid_values(self, temp_file):
        path = temp_file("bad.yaml", "instances:\n  max_instances: 50\n")
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(str(path))
        assert exc_info.value.suggestions

    def test_env_overrides(self, temp_file, monkeypatch):
        path = temp_file("env.yaml", "instances:\n  max_instances: 3\n")
        monkeypatch.setenv("CURSOR_AUTOMATION_MAX_INSTANCES", "5")
        monkeypatch.setenv("CURSOR_AUTOMATION_EXECUTABLE", "/opt/cursor/cursor")
        monkeypatch.setenv("CURSOR_AUTOMATION_LOG_LEVEL", "debug")

        config = load_config(str(path))
        assert config.instances.max_instances == 5
        assert config.instances.executable_path == "/opt/cursor/cursor"
        assert config.log_level == "DEBUG"

    def test_save_and_reload(self, tmp_path):
        path = tmp_path / "nested" / "config.yaml"
        original = AutomationConfig(
            instances=InstanceConfig(max_instances=4),
            security=SecurityConfig(extra_workspace_roots=["/opt/work"]),
        )
        save_config(original, str(path))

        assert Path(path).exists()
        assert load_config(str(path)) == original

    def test_error_message_lists_suggestions(self):
        error = ConfigurationError("Bad", field="retry.delay_ms", suggestions=["Use a number"])
        assert "Field: retry.delay_ms" in str(error)
        assert "- Use a number" in str(error)
