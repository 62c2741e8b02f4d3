"""Wire payloads produced by statistics sources."""

import json
from dataclasses import dataclass
from typing import Any, Union

OCTET_STREAM = "application/octet-stream"
TEXT_PLAIN = "text/plain"
APPLICATION_JSON = "application/json"


@dataclass(frozen=True)
class BinaryPayload:
    """Raw bytes, sent as application/octet-stream."""
    data: bytes

    content_type = OCTET_STREAM

    @property
    def body(self) -> bytes:
        return bytes(self.data)


@dataclass(frozen=True)
class TextPayload:
    """A text string, sent as text/plain."""
    text: str

    content_type = TEXT_PLAIN

    @property
    def body(self) -> str:
        return self.text


@dataclass(frozen=True)
class StructuredPayload:
    """Any JSON-encodable value, sent as application/json."""
    value: Any

    content_type = APPLICATION_JSON

    @property
    def body(self) -> str:
        return json.dumps(self.value, separators=(",", ":"), default=str)


Payload = Union[BinaryPayload, TextPayload, StructuredPayload]


def as_payload(value: Any) -> Payload:
    """
    Wrap a serialized value in its payload variant.

    Payload instances pass through untouched; bytes-like values become
    binary, strings become text and everything else is JSON-encoded.
    """
    if isinstance(value, (BinaryPayload, TextPayload, StructuredPayload)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return BinaryPayload(bytes(value))
    if isinstance(value, str):
        return TextPayload(value)
    return StructuredPayload(value)
