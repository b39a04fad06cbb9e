"""
Media state tracker: camera and mic are two independent booleans.
apply(signal) returns the new state and a HardwareTransition carrying the
state as it was before the signal. Whether the light goes off is decided by
subscribers, not here.
"""
from __future__ import annotations

from dataclasses import replace

from onair.classifier import Signal
from onair.events import EventKind, HardwareTransition, MediaState

SIGNAL_TO_KIND: dict[Signal, EventKind] = {
    Signal.CAMERA_CONNECT: EventKind.CAMERA_ON,
    Signal.CAMERA_DISCONNECT: EventKind.CAMERA_OFF,
    Signal.MIC_START: EventKind.MIC_ON,
    Signal.MIC_STOP: EventKind.MIC_OFF,
}


class MediaStateTracker:
    """
    Single-writer state machine over {camera, mic}. Only the log tailer's loop
    should call apply(); readers get immutable MediaState snapshots.
    """

    def __init__(self, initial: MediaState | None = None) -> None:
        self._state = initial or MediaState()

    @property
    def state(self) -> MediaState:
        return self._state

    def apply(self, signal: Signal) -> tuple[MediaState, HardwareTransition]:
        before = self._state
        kind = SIGNAL_TO_KIND[signal]
        if kind == EventKind.CAMERA_ON:
            after = replace(before, camera=True)
        elif kind == EventKind.CAMERA_OFF:
            after = replace(before, camera=False)
        elif kind == EventKind.MIC_ON:
            after = replace(before, mic=True)
        else:
            after = replace(before, mic=False)
        self._state = after
        return after, HardwareTransition(kind=kind, state_before=before)
