"""
On-air light: decide ON/OFF from a domain event, then POST to the matching
webhook URL (aiohttp). One outbound call per action, no retries.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable

import aiohttp

from onair.events import DomainEvent, EventKind, HardwareTransition, ManualDirective

if TYPE_CHECKING:
    from onair.config import WebhookConfig

logger = logging.getLogger(__name__)


class GatewayError(RuntimeError):
    """The webhook call for an action failed."""


class Action(Enum):
    ON = "on"
    OFF = "off"


def decide(event: DomainEvent) -> Action | None:
    """
    Map an event to a light action. The light stays on while either camera
    or mic is active, so an *_off only turns it off when the other signal
    was already off before this transition.
    """
    if isinstance(event, ManualDirective):
        return Action.ON if event.kind == EventKind.ON_AIR else Action.OFF
    if isinstance(event, HardwareTransition):
        if event.kind in (EventKind.CAMERA_ON, EventKind.MIC_ON):
            return Action.ON
        if event.kind == EventKind.CAMERA_OFF and not event.state_before.mic:
            return Action.OFF
        if event.kind == EventKind.MIC_OFF and not event.state_before.camera:
            return Action.OFF
    return None


class LightController:
    """
    Webhook client for the light. Owns an aiohttp ClientSession unless one is
    passed in; call close() (or use as an async context manager) when done.
    """

    def __init__(
        self,
        on_url: str,
        off_url: str,
        session: aiohttp.ClientSession | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self._urls = {Action.ON: on_url, Action.OFF: off_url}
        self._session = session
        self._owns_session = session is None
        self.log = log or logger

    @classmethod
    def from_config(cls, config: WebhookConfig, log: logging.Logger | None = None) -> LightController:
        return cls(config.on_url, config.off_url, log=log)

    def url_for(self, action: Action) -> str:
        return self._urls[action]

    async def apply(self, action: Action) -> None:
        """POST to the URL for `action`. Raises GatewayError on any failure."""
        url = self._urls[action]
        self.log.info("Turning light %s", action.value.upper())
        if self._session is None:
            self._session = aiohttp.ClientSession()
        try:
            async with self._session.post(url) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise GatewayError(
                        f"light {action.value}: HTTP {resp.status} {body[:200]!r}"
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise GatewayError(f"light {action.value}: {e}") from e

    async def on(self) -> None:
        await self.apply(Action.ON)

    async def off(self) -> None:
        await self.apply(Action.OFF)

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> LightController:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()


def light_subscriber(
    light: LightController,
    log: logging.Logger | None = None,
) -> Callable[[DomainEvent], Awaitable[None]]:
    """
    Bus handler: decide, then apply. Gateway failures are logged and swallowed.

    A hardware-derived action equal to the last successfully applied one is
    skipped (camera_on then mic_on is one ON). Manual directives always call
    the gateway, and a failed call is never recorded, so the next transition
    repeats it.
    """
    log = log or logger
    last_applied: Action | None = None

    async def handle(event: DomainEvent) -> None:
        nonlocal last_applied
        if isinstance(event, HardwareTransition):
            log.info(
                "State = camera:%s mic:%s, Event = %s",
                event.state_before.camera, event.state_before.mic, event.kind.value,
            )
        else:
            log.info("Manual directive %s", event.kind.value)
        action = decide(event)
        if action is None:
            log.debug("No light action for %s", event.kind.value)
            return
        if isinstance(event, HardwareTransition) and action == last_applied:
            log.debug("Light already %s, skipping", action.value)
            return
        try:
            await light.apply(action)
        except GatewayError as e:
            log.error("Light %s failed: %s", action.value, e)
            return
        last_applied = action

    return handle
