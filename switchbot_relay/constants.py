"""Constants used across the switchbot-relay package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "switchbot-relay"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_SWITCHBOT_BASE_URL = "https://api.switch-bot.com"
TOKEN_API_VERSION = "v1.0"
HMAC_API_VERSION = "v1.1"

# SwitchBot reports success in the response body, independent of HTTP status.
SWITCHBOT_SUCCESS_CODE = 100

DEFAULT_COMMAND_KEY = "press"
DEFAULT_COMMAND_PARAMETER = "default"
DEFAULT_COMMAND_TYPE = "command"

DEFAULT_PRESS_INTERVAL_SECONDS = 0.6
DEFAULT_REQUEST_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_TIMES = 10

DEFAULT_SERVER_HOST = "127.0.0.1"
DEFAULT_SERVER_PORT = 8080
DEFAULT_ENDPOINT_PATH = "/api/switchbot"
DEFAULT_CORS_ORIGIN = "*"

ENV_TOKEN = "SWITCHBOT_TOKEN"
ENV_SECRET = "SWITCHBOT_SECRET"
ENV_EMOTION_MAP = "DEVICE_EMOTION_JSON"
ENV_PARTICIPANT_MAP = "DEVICE_MAP_JSON"
ENV_CORS_ORIGIN = "CORS_ORIGIN"
