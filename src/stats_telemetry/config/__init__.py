"""Configuration for the telemetry reporter."""

from .settings import (
    ChannelConfig,
    LoggingConfig,
    ReporterConfig,
    TelemetrySettings,
    load_config,
)

__all__ = [
    "ChannelConfig",
    "LoggingConfig",
    "ReporterConfig",
    "TelemetrySettings",
    "load_config",
]
