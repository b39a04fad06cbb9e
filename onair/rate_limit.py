"""
Debounce and throttle wrappers applied per subscription.

Both are small state machines driven by a Scheduler (time + call_later).
The default LoopScheduler uses the running asyncio loop; tests inject a
virtual clock.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Literal, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def time(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


class LoopScheduler:
    """Scheduler backed by whichever asyncio loop is running at call time."""

    def time(self) -> float:
        return asyncio.get_running_loop().time()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback, *args)


class Debouncer:
    """
    Deliver only the last call of a burst, `window` seconds after it.
    Each call cancels the pending delivery and schedules a new one.
    """

    def __init__(
        self,
        func: Callable[..., Any],
        window: float,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._func = func
        self.window = float(window)
        self._scheduler = scheduler or LoopScheduler()
        self._handle: TimerHandle | None = None
        self._fire_at: float | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def fire_at(self) -> float | None:
        return self._fire_at

    def __call__(self, *args: Any) -> None:
        self.cancel()
        self._fire_at = self._scheduler.time() + self.window
        self._handle = self._scheduler.call_later(self.window, self._fire, args)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._fire_at = None

    def _fire(self, args: tuple[Any, ...]) -> None:
        self._handle = None
        self._fire_at = None
        self._func(*args)


class Throttler:
    """
    Deliver a call immediately if at least `window` seconds have passed since
    the last accepted call; otherwise drop it. No trailing call.
    """

    def __init__(
        self,
        func: Callable[..., Any],
        window: float,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._func = func
        self.window = float(window)
        self._scheduler = scheduler or LoopScheduler()
        self._last_accepted: float | None = None

    def __call__(self, *args: Any) -> bool:
        """Returns True if the call was delivered, False if dropped."""
        now = self._scheduler.time()
        if self._last_accepted is not None and (now - self._last_accepted) < self.window:
            logger.debug("Throttled call dropped (%.3fs since last)", now - self._last_accepted)
            return False
        self._last_accepted = now
        self._func(*args)
        return True


class KeyedThrottler:
    """One independent Throttler per key, so bursts of one key never starve another."""

    def __init__(
        self,
        func: Callable[..., Any],
        window: float,
        key: Callable[..., Hashable],
        scheduler: Scheduler | None = None,
    ) -> None:
        self._func = func
        self.window = float(window)
        self._key = key
        self._scheduler = scheduler or LoopScheduler()
        self._throttlers: dict[Hashable, Throttler] = {}

    def __call__(self, *args: Any) -> bool:
        k = self._key(*args)
        throttler = self._throttlers.get(k)
        if throttler is None:
            throttler = Throttler(self._func, self.window, self._scheduler)
            self._throttlers[k] = throttler
        return throttler(*args)


@dataclass(frozen=True)
class RateLimit:
    """Rate-limit policy attached to a subscription; wrap() builds the stateful wrapper."""
    mode: Literal["debounce", "throttle"]
    window: float
    key: Callable[..., Hashable] | None = None

    def __post_init__(self) -> None:
        if self.window < 0:
            raise ValueError(f"window must be non-negative, got {self.window!r}")

    @classmethod
    def debounce(cls, window: float) -> RateLimit:
        return cls("debounce", window)

    @classmethod
    def throttle(cls, window: float, key: Callable[..., Hashable] | None = None) -> RateLimit:
        return cls("throttle", window, key)

    def wrap(
        self,
        func: Callable[..., Any],
        scheduler: Scheduler | None = None,
    ) -> Debouncer | Throttler | KeyedThrottler:
        if self.mode == "debounce":
            return Debouncer(func, self.window, scheduler)
        if self.key is not None:
            return KeyedThrottler(func, self.window, self.key, scheduler)
        return Throttler(func, self.window, scheduler)
