"""Unit tests for the log line classifier."""
import pytest

from onair.classifier import BANNER_MARKER, Signal, classify, is_banner


def test_camera_connect() -> None:
    line = "2024-01-08 09:12:01.1 0x1a2b Default 0x0 193 0 appleh13camerad: [com.apple.camera] ConnectClient: pid 4711"
    assert classify(line) == Signal.CAMERA_CONNECT


def test_camera_disconnect_not_mistaken_for_connect() -> None:
    line = "appleh13camerad: [com.apple.camera] DisconnectClient: pid 4711"
    assert classify(line) == Signal.CAMERA_DISCONNECT


def test_mic_start() -> None:
    assert classify('coreaudiod: (CoreAudio) Starting { "input": true }') == Signal.MIC_START


def test_mic_stop() -> None:
    assert classify('coreaudiod: (CoreAudio) Stopping { "input": true }') == Signal.MIC_STOP


def test_banner_is_not_a_signal() -> None:
    line = BANNER_MARKER + ' the predicate: process == "appleh13camerad" and ConnectClient'
    assert is_banner(line)
    assert classify(line) is None


@pytest.mark.parametrize("line", [
    "",
    "Timestamp                       Thread     Type        Activity",
    "connectclient",  # case-sensitive
    "Starting",
    "\x00\xff garbled �",
    "x" * 10000,
])
def test_unrecognized_returns_none(line: str) -> None:
    assert classify(line) is None
    assert not is_banner(line)
