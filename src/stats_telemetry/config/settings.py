"""Configuration settings using Pydantic for validation."""

import os
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ChannelConfig(BaseModel):
    """Outbound channel configuration."""
    request_timeout_seconds: float = Field(default=10.0, gt=0, description="HTTP POST timeout")
    ping_interval_seconds: Optional[float] = Field(default=20.0, description="WebSocket keepalive ping interval")
    ping_timeout_seconds: Optional[float] = Field(default=10.0, description="WebSocket ping timeout")
    open_timeout_seconds: float = Field(default=10.0, gt=0, description="WebSocket opening handshake timeout")
    max_frame_size: Optional[int] = Field(default=2**20, description="Max incoming WebSocket frame size")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")
    output: str = Field(default="stdout", description="Log output: stdout, stderr or a file path")

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        level = v.upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator('format')
    @classmethod
    def validate_format(cls, v):
        fmt = v.lower()
        if fmt not in ('json', 'text'):
            raise ValueError(f"Invalid log format: {v}")
        return fmt


class ReporterConfig(BaseModel):
    """Destination and schedule configuration."""
    url: str = Field(default="ws://localhost:8765/metrics", description="WebSocket or HTTP destination")
    default_frequency: float = Field(default=1.0, ge=0, description="Report interval in seconds, 0 reports once")


class TelemetrySettings(BaseSettings):
    """Main telemetry service settings."""

    model_config = SettingsConfigDict(
        env_prefix="STATS_TELEMETRY_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    service_name: str = Field(default="stats-telemetry", description="Service name")
    environment: str = Field(default="local", description="Environment: local, dev, prod")

    reporter: ReporterConfig = Field(default_factory=ReporterConfig)
    channel: ChannelConfig = Field(default_factory=ChannelConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_file: Optional[str] = None) -> TelemetrySettings:
    """
    Load settings from a YAML file.

    ``${NAME}`` and ``${NAME:default}`` strings are substituted from the
    environment. Without a file, settings come from defaults and
    ``STATS_TELEMETRY_*`` environment variables only.
    """
    if not config_file:
        return TelemetrySettings()

    with open(config_file, 'r') as f:
        config_data = yaml.safe_load(f) or {}

    config_data = _substitute_env_vars(config_data)
    return TelemetrySettings(**config_data)


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute environment variables in configuration."""
    if isinstance(data, dict):
        return {key: _substitute_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    elif isinstance(data, str) and data.startswith('${') and data.endswith('}'):
        env_spec = data[2:-1]

        if ':' in env_spec:
            env_name, default_value = env_spec.split(':', 1)
        else:
            env_name, default_value = env_spec, None

        return os.getenv(env_name, default_value)
    else:
        return data
