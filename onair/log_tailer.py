"""
Tail macOS `log stream`, classify each line, apply it to the media state
tracker and publish the resulting HardwareTransition on the event bus.
"""
from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Sequence

from onair.classifier import classify, is_banner
from onair.config import DEFAULT_LOG_COMMAND
from onair.events import HardwareTransition, MediaState
from onair.pubsub import EventBus
from onair.state_machine import MediaStateTracker

logger = logging.getLogger(__name__)


async def read_lines(stream: asyncio.StreamReader) -> AsyncIterator[str]:
    """
    Yield decoded lines from a subprocess pipe until EOF. Lines longer than
    the reader's buffer limit are read in pieces and yielded whole.
    """
    parts: list[bytes] = []
    while True:
        try:
            raw = await stream.readuntil(b"\n")
        except asyncio.LimitOverrunError as e:
            parts.append(await stream.read(e.consumed))
            continue
        except asyncio.IncompleteReadError as e:
            if parts or e.partial:
                yield _decode(b"".join(parts) + e.partial)
            break
        if parts:
            raw = b"".join(parts) + raw
            parts = []
        yield _decode(raw)


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").rstrip("\r\n")


class LogTailer:
    """
    Sole writer of the MediaStateTracker. start() runs the external command
    and returns when its output ends or fails; there is no automatic restart.
    """

    def __init__(
        self,
        bus: EventBus,
        tracker: MediaStateTracker | None = None,
        command: Sequence[str] | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self._bus = bus
        self.tracker = tracker or MediaStateTracker()
        self._command = list(command or DEFAULT_LOG_COMMAND)
        self.log = log or logger
        self._proc: asyncio.subprocess.Process | None = None

    @property
    def state(self) -> MediaState:
        return self.tracker.state

    def handle_line(self, line: str) -> HardwareTransition | None:
        """Classify one line; on a match, update state and publish the transition."""
        self.log.debug("%s", line)
        if not line.strip() or is_banner(line):
            return None
        signal = classify(line)
        if signal is None:
            self.log.info("Unknown log line: %s", line)
            return None
        _, transition = self.tracker.apply(signal)
        self._bus.publish(transition)
        return transition

    async def consume(self, lines: AsyncIterator[str]) -> None:
        """Process lines in order until the iterator ends or raises."""
        try:
            async for line in lines:
                self.handle_line(line)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.log.exception("Error reading log stream: %s", e)
            return
        self.log.error("Log stream ended")

    async def start(self) -> None:
        self.log.info("Starting log tailer")
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self._command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            self.log.error("Could not start %s: %s", self._command[0], e)
            return
        try:
            assert self._proc.stdout is not None
            await self.consume(read_lines(self._proc.stdout))
        finally:
            await self.stop()

    async def stop(self) -> None:
        proc, self._proc = self._proc, None
        if proc is None or proc.returncode is not None:
            return
        try:
            proc.terminate()
            await asyncio.wait_for(proc.wait(), timeout=2.0)
        except ProcessLookupError:
            pass
        except asyncio.TimeoutError:
            proc.kill()
