"""
Camera/microphone detection from macOS `log stream` text output.
The camera daemon logs ConnectClient/DisconnectClient; coreaudiod logs
"Starting {" / "Stopping {" when an input stream starts or stops.
"""
from __future__ import annotations

from enum import Enum


class Signal(Enum):
    CAMERA_CONNECT = "camera_connect"
    CAMERA_DISCONNECT = "camera_disconnect"
    MIC_START = "mic_start"
    MIC_STOP = "mic_stop"


# First match wins. "ConnectClient" is a substring of "DisconnectClient",
# so the disconnect marker must come first.
MARKERS: tuple[tuple[str, Signal], ...] = (
    ("DisconnectClient", Signal.CAMERA_DISCONNECT),
    ("ConnectClient", Signal.CAMERA_CONNECT),
    ("Starting {", Signal.MIC_START),
    ("Stopping {", Signal.MIC_STOP),
)

# Printed once by `log stream` itself when it starts.
BANNER_MARKER = "Filtering the log data using"


def is_banner(line: str) -> bool:
    return BANNER_MARKER in line


def classify(line: str) -> Signal | None:
    """
    Map one raw log line to a Signal. Returns None for the startup banner
    and for anything unrecognized.
    """
    if is_banner(line):
        return None
    for marker, signal in MARKERS:
        if marker in line:
            return signal
    return None
