from configparser import ConfigParser
from pathlib import Path
from typing import Any, Optional

import pytest
from aiohttp import web

from switchbot_relay.config import (
    DeviceMapConfig,
    LoggingConfig,
    RelayConfig,
    ServerConfig,
    SwitchBotConfig,
)


def build_config(
    *,
    token: Optional[str] = "token-abc",
    secret: Optional[str] = None,
    base_url: str = "https://api.switch-bot.com",
    emotions: Optional[dict[str, str]] = None,
    participants: Optional[dict[str, str]] = None,
    fallback: bool = False,
    cors_origin: str = "*",
    max_times: int = 10,
) -> RelayConfig:
    return RelayConfig(
        switchbot=SwitchBotConfig(
            token=token,
            secret=secret,
            base_url=base_url,
            press_interval_seconds=0.6,
            request_timeout_seconds=5.0,
            max_times=max_times,
        ),
        devices=DeviceMapConfig(
            emotions=dict(emotions or {}),
            participants=dict(participants or {}),
            participants_fallback_to_emotions=fallback,
        ),
        server=ServerConfig(cors_origin=cors_origin),
        logging=LoggingConfig(),
        raw=ConfigParser(),
        path=Path("switchbot-relay.cfg"),
    )


class SleepRecorder:
    """Stands in for ``asyncio.sleep`` without waiting."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


class SwitchBotStub:
    """Minimal SwitchBot command API that records every request."""

    def __init__(self, responses: Optional[list[tuple[int, Any]]] = None) -> None:
        self.requests: list[dict[str, Any]] = []
        self._responses = list(responses or [])

    async def _handle(self, request: web.Request) -> web.StreamResponse:
        self.requests.append(
            {
                "version": request.match_info["version"],
                "device_id": request.match_info["device_id"],
                "headers": request.headers.copy(),
                "json": await request.json(),
            }
        )
        if self._responses:
            status, body = self._responses.pop(0)
        else:
            status, body = 200, {"statusCode": 100, "body": {}, "message": "success"}
        if isinstance(body, bytes):
            return web.Response(status=status, body=body)
        if isinstance(body, str):
            return web.Response(status=status, text=body)
        return web.json_response(body, status=status)

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/{version}/devices/{device_id}/commands", self._handle)
        return app


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()
