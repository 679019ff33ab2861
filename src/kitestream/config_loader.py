"""Configuration loader with Pydantic validation and environment variable interpolation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, field_validator

# Load environment variables at module level
load_dotenv(find_dotenv(usecwd=True))

from kitestream.constants import (
    DEFAULT_PING_INTERVAL,
    DEFAULT_WS_ROOT,
    LogLevel,
    Mode,
)


def interpolate_env_vars(value: Any) -> Any:
    """
    Interpolate environment variables in string values.

    Supports formats:
    - ${VAR_NAME} - required, empty string if not set
    - ${VAR_NAME:default} - optional with default value
    """
    if not isinstance(value, str):
        return value

    pattern = r"\$\{([^}:]+)(?::([^}]*))?\}"

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default = match.group(2)

        env_value = os.environ.get(var_name)

        if env_value is not None:
            return env_value
        elif default is not None:
            return default
        else:
            return ""

    return re.sub(pattern, replacer, value)


def process_config_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively process config dict to interpolate env vars."""
    result = {}
    for key, value in data.items():
        if isinstance(value, dict):
            result[key] = process_config_dict(value)
        elif isinstance(value, list):
            result[key] = [
                process_config_dict(item) if isinstance(item, dict) else interpolate_env_vars(item)
                for item in value
            ]
        else:
            result[key] = interpolate_env_vars(value)
    return result


# ============================================
# Pydantic Configuration Models
# ============================================


class EnvironmentConfig(BaseModel):
    """Runtime settings."""

    log_level: LogLevel = LogLevel.INFO


class KiteConfig(BaseModel):
    """Broker credentials and websocket endpoint."""

    api_key: str = ""
    access_token: str = ""
    ws_root: str = DEFAULT_WS_ROOT

    @field_validator("ws_root")
    @classmethod
    def validate_ws_root(cls, v: str) -> str:
        """Endpoint must be a websocket URL."""
        if not v.startswith(("ws://", "wss://")):
            raise ValueError(f"ws_root must start with ws:// or wss://, got: {v}")
        return v.rstrip("/")

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.access_token)


class StreamConfig(BaseModel):
    """Stream behaviour and initial subscriptions."""

    ping_interval: float = DEFAULT_PING_INTERVAL
    mode: Mode = Mode.QUOTE
    tokens: list[int] = Field(default_factory=list)

    @field_validator("ping_interval")
    @classmethod
    def validate_ping_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"ping_interval must be positive, got: {v}")
        return v

    @field_validator("tokens")
    @classmethod
    def validate_tokens(cls, v: list[int]) -> list[int]:
        """Validate instrument tokens are positive."""
        for token in v:
            if token <= 0:
                raise ValueError(f"Instrument token must be positive, got: {token}")
        return v


class AppConfig(BaseModel):
    """Root application configuration."""

    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)
    kite: KiteConfig = Field(default_factory=KiteConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)


# ============================================
# Configuration Loader
# ============================================


class ConfigLoader:
    """Load and validate configuration from YAML files with env var interpolation."""

    def __init__(self, config_path: str | Path) -> None:
        """
        Initialize config loader.

        Args:
            config_path: Path to the YAML configuration file.
        """
        self.config_path = Path(config_path)

    def load(self) -> AppConfig:
        """
        Load and validate configuration.

        Returns:
            Validated AppConfig instance.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            yaml.YAMLError: If YAML is invalid.
            pydantic.ValidationError: If config validation fails.
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)

        if raw_config is None:
            raw_config = {}

        processed_config = process_config_dict(raw_config)

        return AppConfig.model_validate(processed_config)


def load_config(config_path: str | Path) -> AppConfig:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Validated AppConfig instance.
    """
    loader = ConfigLoader(config_path)
    return loader.load()


def load_config_with_overrides(
    config_path: str | Path,
    *,
    tokens: list[int] | None = None,
    mode: str | None = None,
    log_level: str | None = None,
) -> AppConfig:
    """
    Load configuration with CLI overrides.

    Args:
        config_path: Path to the YAML configuration file.
        tokens: Replace the initial subscription tokens.
        mode: Override the streaming mode.
        log_level: Override the log level.

    Returns:
        Validated AppConfig instance with overrides applied.
    """
    config = load_config(config_path)

    updates: dict[str, Any] = {}
    stream_updates: dict[str, Any] = {}

    if tokens:
        stream_updates["tokens"] = StreamConfig(tokens=list(tokens)).tokens

    if mode is not None:
        stream_updates["mode"] = Mode(mode.lower())

    if stream_updates:
        updates["stream"] = config.stream.model_copy(update=stream_updates)

    if log_level is not None:
        updates["environment"] = config.environment.model_copy(
            update={"log_level": LogLevel(log_level.upper())}
        )

    if updates:
        return config.model_copy(update=updates)

    return config
