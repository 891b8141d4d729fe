"""Decoding of JSON-RPC response bodies.

A server may answer with a plain JSON object or with Server-Sent Events where
one ``data:`` line carries the JSON-RPC message.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from invoice_lab.extraction.exceptions import TransportError


@dataclass(frozen=True)
class SseFrame:
    """One Server-Sent Events frame."""

    event: str = "message"
    data: str = ""
    id: str | None = None


@dataclass(frozen=True)
class PlainEnvelope:
    """Response body that is a JSON document."""

    payload: dict[str, Any]

    def message(self) -> dict[str, Any]:
        return self.payload


@dataclass(frozen=True)
class SseEnvelope:
    """Response body in Server-Sent Events format."""

    frames: list[SseFrame] = field(default_factory=list)

    def message(self) -> dict[str, Any]:
        """Return the first frame whose data is a JSON object."""
        for frame in self.frames:
            if not frame.data:
                continue
            try:
                parsed = json.loads(frame.data)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                return parsed
        raise TransportError("SSE response contains no JSON-RPC message")


Envelope = PlainEnvelope | SseEnvelope


def is_event_stream(text: str, content_type: str = "") -> bool:
    if content_type.split(";")[0].strip().lower() == "text/event-stream":
        return True
    return text.lstrip().startswith(("event:", "data:", "id:", ":"))


def parse_sse_frames(text: str) -> list[SseFrame]:
    """Split an event stream into frames, joining multi-line data fields."""
    frames: list[SseFrame] = []
    event = "message"
    data_lines: list[str] = []
    frame_id: str | None = None
    seen_field = False

    for raw_line in text.splitlines() + [""]:
        line = raw_line.rstrip("\r")
        if not line:
            if seen_field:
                frames.append(SseFrame(event=event, data="\n".join(data_lines), id=frame_id))
            event, data_lines, frame_id, seen_field = "message", [], None, False
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        seen_field = True
        if name == "event":
            event = value
        elif name == "data":
            data_lines.append(value)
        elif name == "id":
            frame_id = value
    return frames


def decode_envelope(text: str, content_type: str = "") -> Envelope:
    """Decode a response body into a plain or SSE envelope.

    Raises:
        TransportError: if the body is neither a JSON object nor an event stream.
    """
    if is_event_stream(text, content_type):
        return SseEnvelope(frames=parse_sse_frames(text))
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise TransportError(f"Invalid JSON-RPC response: {exc}", body=text) from exc
    if not isinstance(parsed, dict):
        raise TransportError("JSON-RPC response must be an object", body=text)
    return PlainEnvelope(payload=parsed)
