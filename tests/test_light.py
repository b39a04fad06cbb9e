"""Unit tests for light decisions and the webhook gateway."""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from onair.events import EventKind, HardwareTransition, ManualDirective, MediaState
from onair.light import Action, GatewayError, LightController, decide, light_subscriber


def hw(kind: EventKind, camera: bool = False, mic: bool = False) -> HardwareTransition:
    return HardwareTransition(kind, MediaState(camera=camera, mic=mic))


@pytest.mark.parametrize("event, expected", [
    (hw(EventKind.CAMERA_ON), Action.ON),
    (hw(EventKind.MIC_ON, camera=True), Action.ON),
    (hw(EventKind.CAMERA_OFF, camera=True, mic=False), Action.OFF),
    (hw(EventKind.CAMERA_OFF, camera=True, mic=True), None),
    (hw(EventKind.MIC_OFF, camera=False, mic=True), Action.OFF),
    (hw(EventKind.MIC_OFF, camera=True, mic=True), None),
    (ManualDirective(EventKind.ON_AIR), Action.ON),
    (ManualDirective(EventKind.OFF_AIR), Action.OFF),
])
def test_decide(event, expected) -> None:
    assert decide(event) == expected


@pytest_asyncio.fixture
async def webhook():
    """A local webhook endpoint recording POSTed paths."""
    hits: list[str] = []

    async def handle(request: web.Request) -> web.Response:
        hits.append(request.path)
        if request.path == "/broken":
            return web.Response(status=500, text="nope")
        return web.Response(text="Congratulations!")

    app = web.Application()
    app.router.add_post("/{name}", handle)
    server = TestServer(app)
    await server.start_server()
    try:
        yield server, hits
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_apply_posts_to_matching_url(webhook) -> None:
    server, hits = webhook
    async with LightController(str(server.make_url("/on")), str(server.make_url("/off"))) as light:
        await light.apply(Action.ON)
        await light.off()
    assert hits == ["/on", "/off"]


@pytest.mark.asyncio
async def test_apply_http_error_raises_gateway_error(webhook) -> None:
    server, hits = webhook
    async with LightController(str(server.make_url("/broken")), str(server.make_url("/off"))) as light:
        with pytest.raises(GatewayError, match="HTTP 500"):
            await light.on()
    assert hits == ["/broken"]


@pytest.mark.asyncio
async def test_apply_connection_error_raises_gateway_error() -> None:
    async with LightController("http://127.0.0.1:9/on", "http://127.0.0.1:9/off") as light:
        with pytest.raises(GatewayError):
            await light.on()


@pytest.mark.asyncio
async def test_subscriber_applies_decision() -> None:
    light = AsyncMock(spec=LightController)
    handle = light_subscriber(light)
    await handle(hw(EventKind.CAMERA_ON))
    await handle(hw(EventKind.CAMERA_OFF, camera=True, mic=True))
    await handle(ManualDirective(EventKind.OFF_AIR))
    assert [c.args[0] for c in light.apply.await_args_list] == [Action.ON, Action.OFF]


@pytest.mark.asyncio
async def test_subscriber_swallows_gateway_error(caplog) -> None:
    light = AsyncMock(spec=LightController)
    light.apply.side_effect = GatewayError("down")
    handle = light_subscriber(light)
    await handle(ManualDirective(EventKind.ON_AIR))
    light.apply.assert_awaited_once_with(Action.ON)
    assert "Light on failed: down" in caplog.text


@pytest.mark.asyncio
async def test_camera_off_waits_for_mic() -> None:
    """camera_off while mic is on does nothing; the later mic_off turns the light off once."""
    light = AsyncMock(spec=LightController)
    handle = light_subscriber(light)
    await handle(hw(EventKind.CAMERA_OFF, camera=True, mic=True))
    light.apply.assert_not_awaited()
    await handle(hw(EventKind.MIC_OFF, camera=False, mic=True))
    light.apply.assert_awaited_once_with(Action.OFF)


@pytest.mark.asyncio
async def test_repeated_hardware_action_is_skipped() -> None:
    light = AsyncMock(spec=LightController)
    handle = light_subscriber(light)
    await handle(hw(EventKind.CAMERA_ON))
    await handle(hw(EventKind.MIC_ON, camera=True))
    light.apply.assert_awaited_once_with(Action.ON)


@pytest.mark.asyncio
async def test_manual_directive_always_calls_gateway() -> None:
    light = AsyncMock(spec=LightController)
    handle = light_subscriber(light)
    await handle(ManualDirective(EventKind.ON_AIR))
    await handle(ManualDirective(EventKind.ON_AIR))
    assert light.apply.await_count == 2


@pytest.mark.asyncio
async def test_failed_call_is_repeated_by_next_transition() -> None:
    light = AsyncMock(spec=LightController)
    light.apply.side_effect = [GatewayError("down"), None]
    handle = light_subscriber(light)
    await handle(hw(EventKind.CAMERA_ON))
    await handle(hw(EventKind.MIC_ON, camera=True))
    assert [c.args[0] for c in light.apply.await_args_list] == [Action.ON, Action.ON]
