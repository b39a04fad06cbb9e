"""
In-process pub/sub for domain events.

publish() is synchronous: it hands the event to every subscription, in
registration order, before returning. Async handlers are scheduled as tasks
so a slow handler never blocks the publisher; each subscription chains its
own tasks so one handler always sees events in publish order.

Usage:
    bus = EventBus()
    sub = bus.subscribe(handler, rate_limit=RateLimit.debounce(0.5))
    bus.publish(ManualDirective(EventKind.ON_AIR))
    sub.cancel()
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Iterator, Union

from onair.events import DomainEvent
from onair.rate_limit import RateLimit, Scheduler
from onair.utils import run_logged

logger = logging.getLogger(__name__)

Handler = Callable[[DomainEvent], Union[None, Awaitable[None]]]


class Subscription:
    """
    One registration on the bus: a handler, an optional event-type filter,
    and an optional rate-limit wrapper sitting in front of the handler.
    """

    def __init__(
        self,
        bus: EventBus,
        handler: Handler,
        event_types: tuple[type, ...] | None = None,
        rate_limit: RateLimit | None = None,
        scheduler: Scheduler | None = None,
        name: str | None = None,
    ) -> None:
        self._bus = bus
        self.handler = handler
        self.event_types = event_types
        self.rate_limit = rate_limit
        self.name = name or getattr(handler, "__qualname__", repr(handler))
        self._gate: Callable[[DomainEvent], Any] = (
            rate_limit.wrap(self._deliver, scheduler) if rate_limit else self._deliver
        )
        self._tail: asyncio.Task[None] | None = None
        self.active = True

    def accepts(self, event: DomainEvent) -> bool:
        return self.event_types is None or isinstance(event, self.event_types)

    def notify(self, event: DomainEvent) -> None:
        """Called by the bus; passes through the rate limiter, if any."""
        if self.active:
            self._gate(event)

    def cancel(self) -> None:
        """Remove from the bus. Calling twice is a no-op."""
        self._bus.unsubscribe(self)

    @property
    def pending(self) -> asyncio.Task[None] | None:
        if self._tail is not None and self._tail.done():
            self._tail = None
        return self._tail

    def _deliver(self, event: DomainEvent) -> None:
        if not self.active:
            return
        try:
            result = self.handler(event)
        except Exception as e:
            self._bus.log.exception("Subscriber %s failed on %s: %s", self.name, event, e)
            return
        if inspect.isawaitable(result):
            self._tail = asyncio.ensure_future(
                run_logged(result, f"subscriber {self.name}", self._bus.log, after=self.pending)
            )

    def _deactivate(self) -> None:
        self.active = False
        cancel = getattr(self._gate, "cancel", None)
        if cancel is not None:
            cancel()


class EventBus:
    """Broadcast of DomainEvents to a dynamic set of subscriptions."""

    def __init__(
        self,
        scheduler: Scheduler | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self._subscriptions: list[Subscription] = []
        self._scheduler = scheduler
        self.log = log or logger

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        handler: Handler,
        *,
        event_types: tuple[type, ...] | None = None,
        rate_limit: RateLimit | None = None,
        name: str | None = None,
    ) -> Subscription:
        sub = Subscription(
            self,
            handler,
            event_types=event_types,
            rate_limit=rate_limit,
            scheduler=self._scheduler,
            name=name,
        )
        # Copy-on-write: publish() iterates over a snapshot.
        self._subscriptions = [*self._subscriptions, sub]
        self.log.debug("Subscribed %s (%d subscribers)", sub.name, len(self._subscriptions))
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription not in self._subscriptions:
            return
        subscription._deactivate()
        self._subscriptions = [s for s in self._subscriptions if s is not subscription]
        self.log.debug(
            "Unsubscribed %s (%d subscribers)", subscription.name, len(self._subscriptions)
        )

    @contextmanager
    def subscribed(self, handler: Handler, **kwargs: Any) -> Iterator[Subscription]:
        """Subscription scoped to a with-block; always removed on exit."""
        sub = self.subscribe(handler, **kwargs)
        try:
            yield sub
        finally:
            self.unsubscribe(sub)

    def publish(self, event: DomainEvent) -> None:
        for sub in self._subscriptions:
            if not sub.active or not sub.accepts(event):
                continue
            try:
                sub.notify(event)
            except Exception as e:
                self.log.exception("Dispatch to %s failed on %s: %s", sub.name, event, e)

    async def wait_idle(self) -> None:
        """Wait until every async delivery started so far has finished."""
        while True:
            pending = [t for t in (s.pending for s in self._subscriptions) if t is not None]
            if not pending:
                return
            await asyncio.wait(pending)
