"""
Domain events: media state snapshot, hardware transitions, manual directives,
and the JSON envelope exchanged with observers.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


class EnvelopeError(ValueError):
    """Inbound observer message that is not a valid directive envelope."""


class EventKind(str, Enum):
    CAMERA_ON = "camera_on"
    CAMERA_OFF = "camera_off"
    MIC_ON = "mic_on"
    MIC_OFF = "mic_off"
    ON_AIR = "on_air"
    OFF_AIR = "off_air"


HARDWARE_KINDS = frozenset(
    {EventKind.CAMERA_ON, EventKind.CAMERA_OFF, EventKind.MIC_ON, EventKind.MIC_OFF}
)
DIRECTIVE_KINDS = frozenset({EventKind.ON_AIR, EventKind.OFF_AIR})


@dataclass(frozen=True)
class MediaState:
    camera: bool = False
    mic: bool = False

    @property
    def on_air(self) -> bool:
        """Combined status: camera or mic active."""
        return self.camera or self.mic


@dataclass(frozen=True)
class HardwareTransition:
    """A camera/mic change, with the state as it was just before the change."""
    kind: EventKind
    state_before: MediaState

    def __post_init__(self) -> None:
        if self.kind not in HARDWARE_KINDS:
            raise ValueError(f"not a hardware transition: {self.kind!r}")


@dataclass(frozen=True)
class ManualDirective:
    kind: EventKind

    def __post_init__(self) -> None:
        if self.kind not in DIRECTIVE_KINDS:
            raise ValueError(f"not a manual directive: {self.kind!r}")

    @classmethod
    def for_status(cls, on_air: bool) -> ManualDirective:
        return cls(EventKind.ON_AIR if on_air else EventKind.OFF_AIR)


DomainEvent = Union[HardwareTransition, ManualDirective]


def to_envelope(event: DomainEvent) -> str:
    """Serialize an event as {"type": <kind>}."""
    return json.dumps({"type": event.kind.value})


def status_envelope(state: MediaState) -> str:
    """
    Combined status sent to an observer on connect: on_air or off_air, plus
    the camera and mic flags it was derived from.
    """
    directive = ManualDirective.for_status(state.on_air)
    return json.dumps({"type": directive.kind.value, "camera": state.camera, "mic": state.mic})


def parse_envelope(raw: str | bytes) -> ManualDirective:
    """
    Parse an inbound observer message. Only on_air / off_air are accepted;
    observers cannot inject hardware transitions.
    """
    try:
        data: Any = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise EnvelopeError(f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise EnvelopeError(f"envelope is not an object: {type(data).__name__}")
    kind = data.get("type")
    if not isinstance(kind, str):
        raise EnvelopeError(f"envelope type missing or not a string: {kind!r}")
    try:
        event_kind = EventKind(kind)
    except ValueError:
        raise EnvelopeError(f"unknown event type {kind!r}") from None
    if event_kind not in DIRECTIVE_KINDS:
        raise EnvelopeError(f"observers may only send on_air/off_air, got {kind!r}")
    return ManualDirective(event_kind)
