"""
On-air monitor — entry point. Run with: python -m onair
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

import yaml

from onair.config import Config, ConfigError
from onair.events import HardwareTransition, ManualDirective
from onair.light import LightController, light_subscriber
from onair.log_tailer import LogTailer
from onair.pubsub import EventBus
from onair.rate_limit import RateLimit
from onair.server import StatusServer

logger = logging.getLogger("onair")


def setup_logging(verbose: bool = False) -> None:
    if os.environ.get("VERBOSE") or os.environ.get("DEBUG"):
        verbose = True
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


async def run(config_path: Path | None = None) -> None:
    try:
        config = Config.load(config_path)
    except (ConfigError, OSError, yaml.YAMLError) as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(1)

    bus = EventBus(log=logging.getLogger("onair.bus"))
    light = LightController.from_config(config.webhook, log=logging.getLogger("onair.light"))
    on_light = light_subscriber(light)

    # Hardware transitions come in bursts as streams open and close.
    bus.subscribe(
        on_light,
        event_types=(HardwareTransition,),
        rate_limit=RateLimit.debounce(config.rate_limit.debounce_seconds),
        name="light (hardware)",
    )
    # on_air and off_air are throttled independently.
    bus.subscribe(
        on_light,
        event_types=(ManualDirective,),
        rate_limit=RateLimit.throttle(config.rate_limit.throttle_seconds, key=lambda e: e.kind),
        name="light (manual)",
    )

    tailer = LogTailer(bus, command=config.log_stream.command, log=logging.getLogger("onair.tailer"))
    server = StatusServer(
        bus,
        lambda: tailer.state,
        host=config.server.host,
        port=config.server.port,
        log=logging.getLogger("onair.server"),
    )

    try:
        await server.start()
    except OSError as e:
        logger.error("Could not start server on %s:%d: %s", config.server.host, config.server.port, e)
        await light.close()
        sys.exit(1)

    if config.startup_directive is not None:
        bus.publish(ManualDirective(config.startup_directive))

    try:
        await tailer.start()
        # The tailer does not restart; keep serving manual directives.
        logger.warning("Log tailer stopped; camera/mic changes are no longer tracked")
        await asyncio.Future()
    except asyncio.CancelledError:
        pass
    finally:
        await tailer.stop()
        await server.stop()
        await bus.wait_idle()
        await light.close()
        logger.info("Shutdown complete.")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="onair",
        description="Turn an on-air light on while the camera or microphone is in use.",
    )
    parser.add_argument("--config", type=Path, default=None, help="path to config.yaml")
    parser.add_argument("-v", "--verbose", action="store_true", help="log every raw log line")
    return parser.parse_args(argv)


def main() -> None:
    args = parse_args()
    setup_logging(args.verbose)
    try:
        asyncio.run(run(config_path=args.config))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
        sys.exit(0)


if __name__ == "__main__":
    main()
