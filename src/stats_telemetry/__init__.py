"""
Stats Telemetry - periodic statistics reporting over one shared connection.

This package reports any number of statistics sources, each on its own
schedule, to a single WebSocket or HTTP endpoint.
"""

from .errors import (
    ConstructionError,
    NotReadyError,
    RequestAbortedError,
    SerializationError,
    TelemetryError,
    TransmissionError,
    UnsupportedSchemeError,
)
from .payload import BinaryPayload, Payload, StructuredPayload, TextPayload, as_payload
from .reporter import ChannelKind, Reporter, ReportingSession
from .stats import StatsSource

__version__ = "1.0.0"
__author__ = "Stats Telemetry Team"

__all__ = [
    "BinaryPayload",
    "ChannelKind",
    "ConstructionError",
    "NotReadyError",
    "Payload",
    "Reporter",
    "ReportingSession",
    "RequestAbortedError",
    "SerializationError",
    "StatsSource",
    "StructuredPayload",
    "TelemetryError",
    "TextPayload",
    "TransmissionError",
    "UnsupportedSchemeError",
    "as_payload",
]
