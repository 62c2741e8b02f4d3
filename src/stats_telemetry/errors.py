"""Exception hierarchy for the telemetry reporter."""


class TelemetryError(Exception):
    """Base class for every telemetry error."""


class ConstructionError(TelemetryError):
    """A reporter could not be built from its destination."""


class UnsupportedSchemeError(ConstructionError, ValueError):
    """The destination URL scheme is neither WebSocket nor HTTP."""

    def __init__(self, scheme: str):
        self.scheme = scheme
        super().__init__(f"Protocol {scheme or '<none>'}: not supported")


class NotReadyError(TelemetryError):
    """A source has no data to serialize yet."""


class SerializationError(TelemetryError):
    """A source failed to produce a payload."""


class TransmissionError(TelemetryError):
    """A payload could not be delivered to the destination."""


class RequestAbortedError(TransmissionError):
    """An in-flight request was aborted before it completed."""
