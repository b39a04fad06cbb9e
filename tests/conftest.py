"""Shared fixtures: a virtual-clock scheduler for rate limiter tests."""
from __future__ import annotations

import heapq
import itertools
from typing import Any, Callable

import pytest


class FakeHandle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Virtual clock: call_later callbacks run only when advance() passes their time."""

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: list[tuple[float, int, FakeHandle, Callable[..., Any], tuple[Any, ...]]] = []
        self._seq = itertools.count()

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> FakeHandle:
        handle = FakeHandle()
        heapq.heappush(self._queue, (self.now + delay, next(self._seq), handle, callback, args))
        return handle

    def advance_to(self, t: float) -> None:
        while self._queue and self._queue[0][0] <= t:
            when, _, handle, callback, args = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.now = when
            callback(*args)
        self.now = t

    def advance(self, seconds: float) -> None:
        self.advance_to(self.now + seconds)


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()
