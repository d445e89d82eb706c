"""aiohttp endpoint that relays command requests to SwitchBot."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from enum import Enum
from typing import AsyncIterator, Dict, Optional

import aiohttp
from aiohttp import web

from .config import RelayConfig
from .core.models import CommandRequest
from .core.protocols import Clock, NonceFactory, Sleeper
from .dispatcher import CommandDispatcher
from .errors import (
    InvalidInput,
    Misconfiguration,
    PayloadTooLarge,
    RelayError,
    ResolutionFailure,
)
from .resolver import DeviceNotFound, resolve
from .responder import (
    dispatch_response,
    error_response,
    json_response,
    method_not_allowed,
    parse_command_request,
    preflight_response,
)
from .signing import scheme_from_config, uuid_nonce

LOGGER = logging.getLogger(__name__)


class RequestStage(str, Enum):
    RECEIVED = "received"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"
    AUTHENTICATING = "authenticating"
    DISPATCHING = "dispatching"
    ALL_OK = "all_ok"
    PARTIAL_FAIL = "partial_fail"
    TRANSPORT_ERROR = "transport_error"


class RelayServer:
    """HTTP server exposing the command endpoint and `/healthz`.

    The configuration is treated as read-only; the only process-wide resource
    is the outbound :class:`aiohttp.ClientSession`, opened on startup.
    """

    def __init__(
        self,
        config: RelayConfig,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: Sleeper = asyncio.sleep,
        clock: Clock = time.time,
        nonce_factory: NonceFactory = uuid_nonce,
    ) -> None:
        self._config = config
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep
        self._clock = clock
        self._nonce_factory = nonce_factory
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    @property
    def config(self) -> RelayConfig:
        return self._config

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_route("*", self._config.server.path, self.handle_command)
        app.router.add_get("/healthz", self.handle_health)
        app.cleanup_ctx.append(self._client_session_ctx)
        return app

    async def start(self) -> None:
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        self._site = web.TCPSite(
            self._runner, self._config.server.host, self._config.server.port
        )
        await self._site.start()
        LOGGER.info(
            "Relay endpoint listening on http://%s:%s%s",
            self._config.server.host,
            self._config.server.port,
            self._config.server.path,
        )

    async def stop(self) -> None:
        with contextlib.suppress(Exception):
            if self._site is not None:
                await self._site.stop()
        if self._runner is not None:
            await self._runner.cleanup()
        self._site = None
        self._runner = None

    async def _client_session_ctx(self, app: web.Application) -> AsyncIterator[None]:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        try:
            yield
        finally:
            if self._owns_session and self._session is not None:
                await self._session.close()
                self._session = None

    def build_dispatcher(self, session: aiohttp.ClientSession) -> CommandDispatcher:
        switchbot = self._config.switchbot
        return CommandDispatcher(
            session,
            scheme_from_config(switchbot),
            base_url=switchbot.base_url,
            press_interval=switchbot.press_interval_seconds,
            request_timeout=switchbot.request_timeout_seconds,
            sleep=self._sleep,
            clock=self._clock,
            nonce_factory=self._nonce_factory,
        )

    async def handle_command(self, request: web.Request) -> web.Response:
        origin = self._config.server.cors_origin

        if request.method == "OPTIONS":
            return preflight_response(origin)
        if request.method != "POST":
            return method_not_allowed(origin)

        LOGGER.debug("Command request %s", RequestStage.RECEIVED.value)

        try:
            command = await self._read_command(request)
            device_id = self._resolve(command)
            dispatcher = self._authenticate()
        except RelayError as exc:
            return error_response(exc, origin)

        LOGGER.info(
            "Dispatching %r x%d to device %s (%s signing)",
            command.command_key,
            command.times,
            device_id,
            dispatcher.scheme.name,
        )

        try:
            result = await dispatcher.dispatch(
                device_id, command.command_key, command.times
            )
        except RelayError as exc:
            LOGGER.error(
                "Command request ended at %s: %s",
                RequestStage.TRANSPORT_ERROR.value,
                exc,
            )
            return error_response(exc, origin)
        except Exception as exc:
            LOGGER.error("Unexpected dispatch failure: %s", exc, exc_info=True)
            return error_response(RelayError(str(exc) or type(exc).__name__), origin)

        stage = RequestStage.ALL_OK if result.ok else RequestStage.PARTIAL_FAIL
        LOGGER.info(
            "Command request ended at %s after %d press(es)", stage.value, result.tries
        )
        return dispatch_response(result, origin)

    async def handle_health(self, request: web.Request) -> web.Response:
        switchbot = self._config.switchbot
        devices = self._config.devices
        healthy = bool(switchbot.token)
        payload: Dict[str, object] = {
            "status": "ok" if healthy else "degraded",
            "signing": ("hmac" if switchbot.secret else "token") if healthy else None,
            "emotions": sorted(devices.emotions),
            "participants": sorted(devices.participant_table),
        }
        return json_response(
            200 if healthy else 503, payload, self._config.server.cors_origin
        )

    async def _read_command(self, request: web.Request) -> CommandRequest:
        if not self._config.switchbot.token:
            LOGGER.error("Rejecting command request: SwitchBot token is not configured")
            raise Misconfiguration("SwitchBot token is not configured")

        try:
            body = await request.json()
        except web.HTTPRequestEntityTooLarge as exc:
            LOGGER.warning("Rejecting command request: %s", exc.text)
            raise PayloadTooLarge(exc.text or "request body is too large") from exc
        except ValueError as exc:
            LOGGER.warning("Rejecting command request with invalid JSON: %s", exc)
            raise InvalidInput("request body is not valid JSON") from exc

        try:
            return parse_command_request(
                body, max_times=self._config.switchbot.max_times
            )
        except InvalidInput as exc:
            LOGGER.warning("Rejecting command request: %s", exc)
            raise

    def _resolve(self, command: CommandRequest) -> str:
        LOGGER.debug("Command request %s", RequestStage.RESOLVING.value)
        devices = self._config.devices
        resolved = resolve(command, devices.emotions, devices.participant_table)
        if isinstance(resolved, DeviceNotFound):
            LOGGER.warning(
                "Command request %s: emotion=%r participantId=%r",
                RequestStage.UNRESOLVED.value,
                resolved.emotion,
                resolved.participant_id,
            )
            raise ResolutionFailure(
                emotion=resolved.emotion,
                participant_id=resolved.participant_id,
                device_id=resolved.device_id,
                known_keys=resolved.known_keys,
            )
        LOGGER.debug("Command request %s to %s", RequestStage.RESOLVED.value, resolved)
        return resolved

    def _authenticate(self) -> CommandDispatcher:
        LOGGER.debug("Command request %s", RequestStage.AUTHENTICATING.value)
        if self._session is None:
            raise RelayError("HTTP client session is not running")
        dispatcher = self.build_dispatcher(self._session)
        LOGGER.debug("Command request %s", RequestStage.DISPATCHING.value)
        return dispatcher
