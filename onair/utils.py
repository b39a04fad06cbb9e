from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable

logger = logging.getLogger("onair.utils")


async def run_logged(
    awaitable: Awaitable[Any],
    context: str = "",
    log: logging.Logger | None = None,
    after: asyncio.Future[Any] | None = None,
) -> None:
    """
    Await a handler result, logging (not raising) any exception.

    If `after` is given, waits for it to finish first so that successive
    deliveries to one handler run in order.
    """
    log = log or logger
    ctx_str = f" ({context})" if context else ""
    try:
        if after is not None and not after.done():
            await asyncio.wait({after})
        await awaitable
    except asyncio.CancelledError:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise
    except Exception as e:
        log.exception("Handler%s failed: %s", ctx_str, e)
