"""Request signing for the SwitchBot cloud API.

Two schemes exist. A bare token is accepted by the ``v1.0`` API, while
``v1.1`` additionally requires an HMAC-SHA256 signature over the token, a
millisecond timestamp and a one-time nonce. The remote side treats the
timestamp/nonce pair as replay protection, so every outbound call must get
its own freshly built header set.
"""

from __future__ import annotations

import base64
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from cryptography.hazmat.primitives import hashes, hmac

from . import constants
from .config import SwitchBotConfig
from .core.protocols import Clock, NonceFactory
from .errors import Misconfiguration

CONTENT_TYPE = "application/json"


def uuid_nonce() -> str:
    return str(uuid.uuid4())


@dataclass(slots=True, frozen=True)
class TokenOnly:
    token: str

    @property
    def api_version(self) -> str:
        return constants.TOKEN_API_VERSION

    @property
    def name(self) -> str:
        return "token"


@dataclass(slots=True, frozen=True)
class HmacSigned:
    token: str
    secret: str = field(repr=False)

    @property
    def api_version(self) -> str:
        return constants.HMAC_API_VERSION

    @property
    def name(self) -> str:
        return "hmac"


SigningScheme = Union[TokenOnly, HmacSigned]


def scheme_from_config(config: SwitchBotConfig) -> SigningScheme:
    """Select the signing scheme based on which credentials are configured."""

    if not config.token:
        raise Misconfiguration("SwitchBot token is not configured")
    if config.secret:
        return HmacSigned(token=config.token, secret=config.secret)
    return TokenOnly(token=config.token)


def compute_signature(token: str, secret: str, timestamp: str, nonce: str) -> str:
    """Return ``upper(base64(HMAC-SHA256(secret, token + t + nonce)))``."""

    mac = hmac.HMAC(secret.encode("utf-8"), hashes.SHA256())
    mac.update(f"{token}{timestamp}{nonce}".encode("utf-8"))
    return base64.b64encode(mac.finalize()).decode("ascii").upper()


class HeaderFactory:
    """Builds per-call header sets for one dispatch sequence.

    Timestamps handed out by a single factory never go backwards, even if
    the wall clock is adjusted mid-sequence.
    """

    def __init__(
        self,
        scheme: SigningScheme,
        *,
        clock: Clock = time.time,
        nonce_factory: NonceFactory = uuid_nonce,
    ) -> None:
        self._scheme = scheme
        self._clock = clock
        self._nonce_factory = nonce_factory
        self._last_timestamp: Optional[int] = None

    @property
    def scheme(self) -> SigningScheme:
        return self._scheme

    def build_headers(self) -> Dict[str, str]:
        scheme = self._scheme
        if isinstance(scheme, TokenOnly):
            return {"Authorization": scheme.token, "Content-Type": CONTENT_TYPE}

        timestamp = self._next_timestamp()
        nonce = self._nonce_factory()
        return {
            "Authorization": scheme.token,
            "sign": compute_signature(scheme.token, scheme.secret, timestamp, nonce),
            "t": timestamp,
            "nonce": nonce,
            "Content-Type": CONTENT_TYPE,
        }

    def _next_timestamp(self) -> str:
        now = int(self._clock() * 1000)
        if self._last_timestamp is not None and now < self._last_timestamp:
            now = self._last_timestamp
        self._last_timestamp = now
        return str(now)


def build_headers(scheme: SigningScheme) -> Dict[str, str]:
    """Build a single header set with a fresh timestamp and nonce."""
    return HeaderFactory(scheme).build_headers()
