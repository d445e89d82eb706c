"""Issue paced command presses against the SwitchBot cloud API."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional
from urllib.parse import quote

import aiohttp

from . import constants
from .core.models import CommandOutcome, DispatchResult
from .core.protocols import Clock, NonceFactory, Sleeper
from .errors import TransportFailure
from .signing import HeaderFactory, SigningScheme, uuid_nonce

LOGGER = logging.getLogger(__name__)


def build_command_payload(command_key: str) -> Dict[str, str]:
    return {
        "command": command_key,
        "parameter": constants.DEFAULT_COMMAND_PARAMETER,
        "commandType": constants.DEFAULT_COMMAND_TYPE,
    }


def parse_body(text: str) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return {"raw": text}


def is_success(outcome: CommandOutcome) -> bool:
    """SwitchBot success needs both a 2xx status and ``statusCode == 100``."""
    if not 200 <= outcome.status < 300:
        return False
    body = outcome.body
    if not isinstance(body, dict):
        return False
    return body.get("statusCode") == constants.SWITCHBOT_SUCCESS_CODE


class CommandDispatcher:
    """Sends ``times`` presses to one device, stopping at the first rejection."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        scheme: SigningScheme,
        *,
        base_url: str = constants.DEFAULT_SWITCHBOT_BASE_URL,
        press_interval: float = constants.DEFAULT_PRESS_INTERVAL_SECONDS,
        request_timeout: Optional[float] = constants.DEFAULT_REQUEST_TIMEOUT_SECONDS,
        sleep: Sleeper = asyncio.sleep,
        clock: Clock = time.time,
        nonce_factory: NonceFactory = uuid_nonce,
    ) -> None:
        self._session = session
        self._scheme = scheme
        self._base_url = base_url.rstrip("/")
        self._press_interval = press_interval
        self._timeout = (
            aiohttp.ClientTimeout(total=request_timeout)
            if request_timeout is not None
            else None
        )
        self._sleep = sleep
        self._clock = clock
        self._nonce_factory = nonce_factory

    @property
    def scheme(self) -> SigningScheme:
        return self._scheme

    def command_url(self, device_id: str) -> str:
        return (
            f"{self._base_url}/{self._scheme.api_version}/devices/"
            f"{quote(device_id, safe='')}/commands"
        )

    async def dispatch(
        self, device_id: str, command_key: str, times: int
    ) -> DispatchResult:
        """Press ``times`` times, pausing between presses.

        Raises:
            TransportFailure: If a call fails at the network level. Outcomes
                collected before the failure travel with the exception.
        """

        if times < 1:
            raise ValueError("times must be at least 1")

        url = self.command_url(device_id)
        payload = build_command_payload(command_key)
        headers = HeaderFactory(
            self._scheme, clock=self._clock, nonce_factory=self._nonce_factory
        )
        result = DispatchResult(device_id=device_id)

        for attempt in range(times):
            if attempt > 0:
                # Presses closer together than this can merge into a double press.
                await self._sleep(self._press_interval)

            LOGGER.debug(
                "POST %s (press %d/%d, %s signing)",
                url,
                attempt + 1,
                times,
                self._scheme.name,
            )
            try:
                outcome = await self._send(url, payload, headers.build_headers())
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                LOGGER.error(
                    "Transport failure on press %d/%d for device %s: %s",
                    attempt + 1,
                    times,
                    device_id,
                    exc,
                )
                raise TransportFailure(
                    _describe_exception(exc), results=result.results
                ) from exc

            result.results.append(outcome)

            if not is_success(outcome):
                result.failed_index = attempt
                LOGGER.warning(
                    "SwitchBot rejected press %d/%d for device %s (HTTP %s)",
                    attempt + 1,
                    times,
                    device_id,
                    outcome.status,
                )
                return result

            LOGGER.debug(
                "Press %d/%d for device %s accepted: %s",
                attempt + 1,
                times,
                device_id,
                outcome.body,
            )

        return result

    async def _send(
        self, url: str, payload: Dict[str, str], headers: Dict[str, str]
    ) -> CommandOutcome:
        options: Dict[str, Any] = {"json": payload, "headers": headers}
        if self._timeout is not None:
            options["timeout"] = self._timeout
        async with self._session.post(url, **options) as response:
            raw = await response.read()
            try:
                text = raw.decode(response.charset or "utf-8", errors="replace")
            except LookupError:
                text = raw.decode("utf-8", errors="replace")
            return CommandOutcome(status=response.status, body=parse_body(text))


def _describe_exception(exc: BaseException) -> str:
    message = str(exc)
    if message:
        return message
    return exc.__class__.__name__
