"""Configuration loader for switchbot-relay."""

from __future__ import annotations

import json
import logging
import os
from configparser import ConfigParser
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional

from . import constants

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SwitchBotConfig:
    token: Optional[str] = None
    secret: Optional[str] = None  # Enables the HMAC signing scheme when present
    base_url: str = constants.DEFAULT_SWITCHBOT_BASE_URL
    press_interval_seconds: float = constants.DEFAULT_PRESS_INTERVAL_SECONDS
    request_timeout_seconds: float = constants.DEFAULT_REQUEST_TIMEOUT_SECONDS
    max_times: int = constants.DEFAULT_MAX_TIMES


@dataclass(slots=True)
class DeviceMapConfig:
    emotions: Dict[str, str] = field(default_factory=dict)
    participants: Dict[str, str] = field(default_factory=dict)
    participants_fallback_to_emotions: bool = False

    @property
    def participant_table(self) -> Dict[str, str]:
        """Table consulted for participant lookups."""
        if self.participants_fallback_to_emotions and not self.participants:
            return self.emotions
        return self.participants


@dataclass(slots=True)
class ServerConfig:
    host: str = constants.DEFAULT_SERVER_HOST
    port: int = constants.DEFAULT_SERVER_PORT
    path: str = constants.DEFAULT_ENDPOINT_PATH
    cors_origin: str = constants.DEFAULT_CORS_ORIGIN


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class RelayConfig:
    switchbot: SwitchBotConfig
    devices: DeviceMapConfig
    server: ServerConfig
    logging: LoggingConfig
    raw: ConfigParser
    path: Path


def parse_device_map(value: Optional[str], *, source: str) -> Dict[str, str]:
    """Parse a JSON object of ``key -> device id`` pairs.

    Malformed input yields an empty map; entries whose key or value is not a
    non-empty string are skipped.
    """

    if not value or not value.strip():
        return {}
    try:
        payload = json.loads(value)
    except json.JSONDecodeError as exc:
        LOGGER.warning("Ignoring malformed device map from %s: %s", source, exc)
        return {}
    if not isinstance(payload, dict):
        LOGGER.warning("Ignoring device map from %s: expected a JSON object", source)
        return {}

    mapping: Dict[str, str] = {}
    for key, device_id in payload.items():
        if not isinstance(device_id, str) or not device_id:
            LOGGER.warning("Skipping device map entry %r from %s", key, source)
            continue
        mapping[str(key)] = device_id
    return mapping


def load_config(
    path: Optional[Path] = None, *, environ: Optional[Mapping[str, str]] = None
) -> RelayConfig:
    """Load configuration from disk and the environment, applying defaults."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    env = os.environ if environ is None else environ

    parser = ConfigParser(interpolation=None)
    parser.read_dict(
        {
            "switchbot": {
                "base_url": constants.DEFAULT_SWITCHBOT_BASE_URL,
                "press_interval_seconds": str(constants.DEFAULT_PRESS_INTERVAL_SECONDS),
                "request_timeout_seconds": str(
                    constants.DEFAULT_REQUEST_TIMEOUT_SECONDS
                ),
                "max_times": str(constants.DEFAULT_MAX_TIMES),
            },
            "devices": {
                "emotions": "{}",
                "participants": "{}",
                "participants_fallback_to_emotions": "false",
            },
            "server": {
                "host": constants.DEFAULT_SERVER_HOST,
                "port": str(constants.DEFAULT_SERVER_PORT),
                "path": constants.DEFAULT_ENDPOINT_PATH,
                "cors_origin": constants.DEFAULT_CORS_ORIGIN,
            },
            "logging": {
                "level": "INFO",
                "log_network": "false",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    _apply_environment(parser, env)

    switchbot = SwitchBotConfig(
        token=parser.get("switchbot", "token", fallback=None) or None,
        secret=parser.get("switchbot", "secret", fallback=None) or None,
        base_url=parser.get("switchbot", "base_url").rstrip("/"),
        press_interval_seconds=max(
            0.0,
            parser.getfloat(
                "switchbot",
                "press_interval_seconds",
                fallback=constants.DEFAULT_PRESS_INTERVAL_SECONDS,
            ),
        ),
        request_timeout_seconds=parser.getfloat(
            "switchbot",
            "request_timeout_seconds",
            fallback=constants.DEFAULT_REQUEST_TIMEOUT_SECONDS,
        ),
        max_times=max(
            1,
            parser.getint(
                "switchbot", "max_times", fallback=constants.DEFAULT_MAX_TIMES
            ),
        ),
    )

    devices = DeviceMapConfig(
        emotions=parse_device_map(
            parser.get("devices", "emotions", fallback="{}"), source="devices.emotions"
        ),
        participants=parse_device_map(
            parser.get("devices", "participants", fallback="{}"),
            source="devices.participants",
        ),
        participants_fallback_to_emotions=parser.getboolean(
            "devices", "participants_fallback_to_emotions", fallback=False
        ),
    )

    server_path = parser.get("server", "path")
    if not server_path.startswith("/"):
        server_path = "/" + server_path

    server = ServerConfig(
        host=parser.get("server", "host"),
        port=parser.getint("server", "port", fallback=constants.DEFAULT_SERVER_PORT),
        path=server_path,
        cors_origin=parser.get("server", "cors_origin")
        or constants.DEFAULT_CORS_ORIGIN,
    )

    log_path_value = parser.get("logging", "path", fallback=None)
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    return RelayConfig(
        switchbot=switchbot,
        devices=devices,
        server=server,
        logging=logging_config,
        raw=parser,
        path=config_path,
    )


def _apply_environment(parser: ConfigParser, env: Mapping[str, str]) -> None:
    overrides = (
        (constants.ENV_TOKEN, "switchbot", "token"),
        (constants.ENV_SECRET, "switchbot", "secret"),
        (constants.ENV_EMOTION_MAP, "devices", "emotions"),
        (constants.ENV_PARTICIPANT_MAP, "devices", "participants"),
        (constants.ENV_CORS_ORIGIN, "server", "cors_origin"),
    )
    for variable, section, option in overrides:
        value = env.get(variable)
        if value:
            parser.set(section, option, value)
