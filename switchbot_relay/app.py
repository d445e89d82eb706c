"""Application entry-point for switchbot-relay."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

from .config import RelayConfig, load_config
from .core.models import DispatchResult
from .logging import configure_logging
from .server import RelayServer

LOGGER = logging.getLogger(__name__)


class RelayApp:
    """Owns the relay server lifecycle."""

    def __init__(self, config: Optional[RelayConfig] = None) -> None:
        self._config = config or load_config()
        self._server = RelayServer(self._config)
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def server(self) -> RelayServer:
        return self._server

    async def run(self) -> None:
        switchbot = self._config.switchbot
        if not switchbot.token:
            LOGGER.warning(
                "SwitchBot token is not configured; command requests will fail"
            )
        LOGGER.info(
            "Loaded %d emotion and %d participant device mappings",
            len(self._config.devices.emotions),
            len(self._config.devices.participant_table),
        )

        self._shutdown_event = asyncio.Event()
        await self._server.start()
        try:
            await self._shutdown_event.wait()
        finally:
            await self._server.stop()

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    @classmethod
    def start(cls, config: Optional[RelayConfig] = None) -> None:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
            secrets=(
                instance._config.switchbot.token,
                instance._config.switchbot.secret,
            ),
        )
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("switchbot-relay received shutdown signal")


async def press_once(
    config: RelayConfig, device_id: str, command_key: str, times: int
) -> DispatchResult:
    """Dispatch directly to a device, bypassing the HTTP endpoint."""

    switchbot = config.switchbot
    timeout = aiohttp.ClientTimeout(total=switchbot.request_timeout_seconds * times + 30)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        dispatcher = RelayServer(config, session=session).build_dispatcher(session)
        return await dispatcher.dispatch(device_id, command_key, times)
