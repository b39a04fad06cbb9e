"""
Load and validate config.yaml with defaults and environment overrides.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from onair.events import EventKind

IFTTT_URL_TEMPLATE = "https://maker.ifttt.com/trigger/{event}/with/key/{key}"

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 4417
DEFAULT_DEBOUNCE_SECONDS = 0.5
DEFAULT_THROTTLE_SECONDS = 1.0
DEFAULT_STARTUP_DIRECTIVE = EventKind.OFF_AIR.value

# Camera: appleh13camerad ConnectClient/DisconnectClient.
# Mic: coreaudiod "Starting {" / "Stopping {".
LOG_PREDICATE = " or ".join([
    '(process == "appleh13camerad" and (composedMessage contains "ConnectClient" '
    'or composedMessage contains "DisconnectClient"))',
    '(process == "coreaudiod" and subsystem == "com.apple.coreaudio" and '
    '(composedMessage contains "Starting {" or composedMessage contains "Stopping {"))',
])
DEFAULT_LOG_COMMAND = ["/usr/bin/log", "stream", "--predicate", LOG_PREDICATE]


class ConfigError(ValueError):
    """Invalid or incomplete configuration."""


@dataclass
class WebhookConfig:
    on_url: str
    off_url: str


@dataclass
class ServerConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


@dataclass
class RateLimitConfig:
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    throttle_seconds: float = DEFAULT_THROTTLE_SECONDS


@dataclass
class LogStreamConfig:
    command: list[str] = field(default_factory=lambda: list(DEFAULT_LOG_COMMAND))


@dataclass
class Config:
    webhook: WebhookConfig
    server: ServerConfig = field(default_factory=ServerConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    log_stream: LogStreamConfig = field(default_factory=LogStreamConfig)
    startup_directive: EventKind | None = EventKind.OFF_AIR

    @classmethod
    def load(
        cls,
        path: str | Path | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> Config:
        """
        Load from YAML. An explicit path must exist; with no path, a missing
        default config.yaml means "defaults + environment only".
        """
        data: dict[str, Any] = {}
        if path is None:
            default = _default_config_path()
            if default.is_file():
                data = _read_yaml(default)
        else:
            data = _read_yaml(Path(path))
        return cls.from_dict(data, environ=os.environ if environ is None else environ)

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        environ: Mapping[str, str] | None = None,
    ) -> Config:
        env = environ or {}
        webhook_data = dict(data.get("webhook") or {})
        server_data = data.get("server") or {}
        rate_data = data.get("rate_limit") or {}
        stream_data = data.get("log_stream") or {}

        # MAKER_* environment variables take precedence over the file.
        for key, var in (("key", "MAKER_WEBHOOK_KEY"), ("on_event", "MAKER_ON_AIR_EVENT"), ("off_event", "MAKER_OFF_AIR_EVENT")):
            if env.get(var):
                webhook_data[key] = env[var]

        port = env.get("PORT") or server_data.get("port", DEFAULT_PORT)
        try:
            port = int(port)
        except (TypeError, ValueError):
            raise ConfigError(f"port must be an integer, got {port!r}") from None
        if not 0 < port < 65536:
            raise ConfigError(f"port out of range: {port}")

        command = stream_data.get("command", DEFAULT_LOG_COMMAND)
        if not isinstance(command, list) or not command or not all(isinstance(c, str) for c in command):
            raise ConfigError(f"log_stream.command must be a non-empty list of strings, got {command!r}")

        return cls(
            webhook=_webhook(webhook_data),
            server=ServerConfig(host=server_data.get("host") or DEFAULT_HOST, port=port),
            rate_limit=RateLimitConfig(
                debounce_seconds=_seconds(rate_data, "debounce_seconds", DEFAULT_DEBOUNCE_SECONDS),
                throttle_seconds=_seconds(rate_data, "throttle_seconds", DEFAULT_THROTTLE_SECONDS),
            ),
            log_stream=LogStreamConfig(command=list(command)),
            startup_directive=_startup_directive(data.get("startup_directive", DEFAULT_STARTUP_DIRECTIVE)),
        )


def _webhook(data: dict[str, Any]) -> WebhookConfig:
    on_url = data.get("on_url")
    off_url = data.get("off_url")
    key = data.get("key")
    if not on_url and key and data.get("on_event"):
        on_url = IFTTT_URL_TEMPLATE.format(event=data["on_event"], key=key)
    if not off_url and key and data.get("off_event"):
        off_url = IFTTT_URL_TEMPLATE.format(event=data["off_event"], key=key)
    if not on_url or not off_url:
        raise ConfigError(
            "webhook on/off URLs are required: set webhook.on_url/off_url, "
            "or MAKER_WEBHOOK_KEY, MAKER_ON_AIR_EVENT and MAKER_OFF_AIR_EVENT"
        )
    return WebhookConfig(on_url=on_url, off_url=off_url)


def _seconds(data: dict[str, Any], key: str, default: float) -> float:
    if key not in data:
        return default
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigError(f"{key} must be a non-negative number, got {value!r}")
    return float(value)


def _startup_directive(value: Any) -> EventKind | None:
    if value is None:
        return None
    if value not in (EventKind.ON_AIR.value, EventKind.OFF_AIR.value):
        raise ConfigError(f"startup_directive must be on_air, off_air or null, got {value!r}")
    return EventKind(value)


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def _default_config_path() -> Path:
    for candidate in (Path.cwd(), Path(__file__).resolve().parent.parent):
        p = candidate / "config.yaml"
        if p.is_file():
            return p
    return Path.cwd() / "config.yaml"
