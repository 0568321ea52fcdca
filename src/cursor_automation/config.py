"""
Configuration schema using Pydantic.

Configuration can be loaded from YAML files and overridden with environment
variables. Security limits are not configurable; see ``security.SecurityPolicy``.
"""

import os
from pathlib import Path
from typing import Optional, List, Dict, Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from cursor_automation.security import DEFAULT_ENV_ALLOWLIST, POLICY


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required values."""

    def __init__(self, message: str, field: Optional[str] = None, suggestions: Optional[List[str]] = None):
        self.message = message
        self.field = field
        self.suggestions = suggestions or []
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        lines = [self.message]
        if self.field:
            lines.append(f"  Field: {self.field}")
        if self.suggestions:
            lines.append("  Suggestions:")
            for s in self.suggestions:
                lines.append(f"    - {s}")
        return "\n".join(lines)


class InstanceConfig(BaseModel):
    """Instance lifecycle configuration."""

    max_instances: int = Field(default=POLICY.MAX_INSTANCES, ge=1, le=POLICY.MAX_INSTANCES)
    window_poll_interval_ms: int = Field(default=500, ge=50, le=5000)
    window_poll_attempts: int = Field(default=10, ge=1, le=100)
    window_lookup_timeout_ms: int = Field(default=2000, ge=50, le=30000)
    termination_grace_seconds: float = Field(default=5.0, ge=0.1, le=60.0)
    palette_settle_ms: int = Field(default=500, ge=0, le=5000)
    char_delay_ms: int = Field(default=30, ge=0, le=1000)
    executable_path: Optional[str] = Field(default=None, description="Override for the Cursor executable")
    env_allowlist: List[str] = Field(default_factory=lambda: list(DEFAULT_ENV_ALLOWLIST))

    @field_validator("env_allowlist")
    @classmethod
    def validate_env_names(cls, value: List[str]) -> List[str]:
        for name in value:
            if not name or not name.replace("_", "").isalnum():
                raise ValueError(f"Invalid environment variable name: {name!r}")
        return value


class RetryConfig(BaseModel):
    """Retry/timeout discipline for window operations."""

    max_attempts: int = Field(default=3, ge=1, le=10)
    delay_ms: int = Field(default=500, ge=0, le=10000)
    operation_timeout_seconds: float = Field(default=30.0, ge=1.0, le=300.0)


class InputConfig(BaseModel):
    """Keyboard/mouse injection configuration."""

    auto_delay_ms: int = Field(default=30, ge=0, le=1000)
    failsafe: bool = Field(default=True, description="Abort when the mouse hits a screen corner")


class SecurityConfig(BaseModel):
    """Additional allowed locations. Limits themselves are fixed."""

    extra_workspace_roots: List[str] = Field(default_factory=list)


class AutomationConfig(BaseModel):
    """Root configuration for Cursor Automation."""

    instances: InstanceConfig = Field(default_factory=InstanceConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    input: InputConfig = Field(default_factory=InputConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR)$")

    @model_validator(mode="after")
    def validate_consistency(self) -> "AutomationConfig":
        """Validate cross-field consistency."""
        poll_budget = (
            self.instances.window_poll_attempts * self.instances.window_poll_interval_ms / 1000.0
        )
        if poll_budget > self.retry.operation_timeout_seconds * 10:
            raise ValueError(
                f"window polling budget ({poll_budget:g}s) is out of proportion with "
                f"retry.operation_timeout_seconds ({self.retry.operation_timeout_seconds:g}s)"
            )
        return self


def get_default_config_path() -> Path:
    """Get default config file path."""
    from cursor_automation.paths import get_config_path

    return Path(get_config_path()) / "config.yaml"


def load_config(config_path: Optional[str] = None) -> AutomationConfig:
    """
    Load configuration from YAML file.

    Falls back to defaults if file doesn't exist.
    Environment variables can override config file values.

    Raises:
        ConfigurationError: If config file is invalid
    """
    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(
                f"Config file not found: {path}",
                suggestions=[
                    f"Create the config file at {path}",
                    "Or run without --config to use defaults",
                ]
            )
    else:
        path = get_default_config_path()

    data: Dict[str, Any] = {}

    if path.exists():
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            mark = getattr(e, "problem_mark", None)
            raise ConfigurationError(
                f"Invalid YAML in config file: {path}",
                suggestions=[
                    f"Check syntax at line {mark.line + 1 if mark else 'unknown'}",
                    "Use a YAML validator to check your config",
                ]
            )

    data = _deep_merge(data, _get_env_overrides())

    try:
        config = AutomationConfig(**data)
    except Exception as e:
        raise ConfigurationError(
            f"Invalid configuration: {e}",
            suggestions=[
                "Check field names and values in your config",
                "Run 'cursor-automation config --show' to see the effective values",
            ]
        )

    return config


def _get_env_overrides() -> Dict[str, Any]:
    """Get configuration overrides from environment variables."""
    overrides: Dict[str, Any] = {}

    env_mappings = {
        "CURSOR_AUTOMATION_EXECUTABLE": ("instances", "executable_path"),
        "CURSOR_AUTOMATION_MAX_INSTANCES": ("instances", "max_instances"),
        "CURSOR_AUTOMATION_LOG_LEVEL": (None, "log_level"),
    }

    for env_key, (section, field) in env_mappings.items():
        value: Any = os.environ.get(env_key)
        if not value:
            continue
        if value.isdigit():
            value = int(value)
        if section is None:
            overrides[field] = value.upper() if isinstance(value, str) else value
        else:
            overrides.setdefault(section, {})[field] = value

    return overrides


def _deep_merge(base: Dict, overlay: Dict) -> Dict:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def save_config(config: AutomationConfig, config_path: Optional[str] = None) -> None:
    """Save configuration to YAML file."""
    path = Path(config_path) if config_path else get_default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        yaml.dump(config.model_dump(), f, default_flow_style=False)
