"""
Status web server (aiohttp): GET / serves the status page, GET /ws is one
realtime channel per observer.

On connect an observer gets the current combined status, then every bus
event. Directives it sends are published on the bus, so every observer,
the sender included, receives the same echo.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable

from aiohttp import WSMsgType, web

from onair.events import (
    DomainEvent,
    EnvelopeError,
    MediaState,
    parse_envelope,
    status_envelope,
    to_envelope,
)
from onair.pubsub import EventBus

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent / "static"
WS_HEARTBEAT_SECONDS = 20.0


class StatusServer:
    def __init__(
        self,
        bus: EventBus,
        state: Callable[[], MediaState],
        host: str = "0.0.0.0",
        port: int = 4417,
        log: logging.Logger | None = None,
    ) -> None:
        self._bus = bus
        self._state = state
        self.host = host
        self.port = port
        self.log = log or logger
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None
        self._observers: set[web.WebSocketResponse] = set()

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    @property
    def is_running(self) -> bool:
        return self._runner is not None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.add_routes([
            web.get("/", self._index),
            web.get("/ws", self._ws_handler),
        ])
        return app

    async def start(self) -> None:
        if self._runner is not None:
            self.log.warning("Status server already running")
            return
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()
        self.log.info("Starting server on port %d", self.port)

    async def stop(self) -> None:
        if self._runner is None:
            return
        for ws in list(self._observers):
            await ws.close()
        await self._runner.cleanup()
        self._runner = None
        self._site = None
        self.log.info("Status server stopped")

    async def _index(self, request: web.Request) -> web.StreamResponse:
        return web.FileResponse(STATIC_DIR / "index.html")

    async def _ws_handler(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(heartbeat=WS_HEARTBEAT_SECONDS)
        await ws.prepare(request)
        peer = request.remote or "?"

        outbox: asyncio.Queue[str] = asyncio.Queue()

        def forward(event: DomainEvent) -> None:
            outbox.put_nowait(to_envelope(event))

        # Snapshot and subscription happen together; the sender task delivers
        # both in order.
        outbox.put_nowait(status_envelope(self._state()))
        with self._bus.subscribed(forward, name=f"observer {peer}"):
            sender = asyncio.create_task(self._send_loop(ws, outbox, peer))
            self._observers.add(ws)
            self.log.info("Observer connected from %s (%d open)", peer, len(self._observers))
            try:
                async for msg in ws:
                    if msg.type == WSMsgType.TEXT:
                        self._handle_message(msg.data, peer)
                    elif msg.type == WSMsgType.BINARY:
                        self.log.warning(
                            "Discarding message from %s: binary frame (%d bytes)", peer, len(msg.data)
                        )
                    elif msg.type == WSMsgType.ERROR:
                        self.log.warning("Observer %s connection error: %s", peer, ws.exception())
                        break
            finally:
                self._observers.discard(ws)
                sender.cancel()
                try:
                    await sender
                except asyncio.CancelledError:
                    pass
                self.log.info("Observer %s disconnected (%d open)", peer, len(self._observers))
        return ws

    async def _send_loop(
        self, ws: web.WebSocketResponse, outbox: asyncio.Queue[str], peer: str
    ) -> None:
        while True:
            data = await outbox.get()
            if ws.closed:
                return
            try:
                await ws.send_str(data)
            except ConnectionResetError as e:
                self.log.debug("Observer %s went away: %s", peer, e)
                return

    def _handle_message(self, data: str, peer: str) -> None:
        try:
            directive = parse_envelope(data)
        except EnvelopeError as e:
            self.log.warning("Discarding message from %s: %s", peer, e)
            return
        self.log.info("Observer %s sent %s", peer, directive.kind.value)
        self._bus.publish(directive)
