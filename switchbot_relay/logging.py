"""Logging setup for the relay, with SwitchBot credentials masked."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
REDACTED = "********"

DISPATCH_LOGGER = "switchbot_relay.dispatcher"


class CredentialRedactingFilter(logging.Filter):
    """Replaces configured token/secret values in rendered log messages."""

    def __init__(self, secrets: Iterable[Optional[str]]) -> None:
        super().__init__()
        self._secrets = sorted(
            {value for value in secrets if value}, key=len, reverse=True
        )

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        redacted = message
        for value in self._secrets:
            redacted = redacted.replace(value, REDACTED)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(
    level: str = "INFO",
    *,
    log_path: Optional[Path] = None,
    log_network: bool = False,
    secrets: Iterable[Optional[str]] = (),
) -> None:
    """Configure root logging handlers.

    Parameters
    ----------
    level:
        Log level name, e.g. "INFO".
    log_path:
        Optional file receiving the same records as the console.
    log_network:
        When true, every outbound press is logged at DEBUG and aiohttp's
        access and client logs are left alone. Otherwise aiohttp is held at
        WARNING and press logging follows ``level``.
    secrets:
        Credential values masked in every handler's output.
    """

    logging.captureWarnings(True)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    redactor = CredentialRedactingFilter(secrets)
    for handler in root.handlers:
        handler.addFilter(redactor)

    if log_network:
        logging.getLogger(DISPATCH_LOGGER).setLevel(logging.DEBUG)
    else:
        logging.getLogger(DISPATCH_LOGGER).setLevel(logging.NOTSET)
        logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
        logging.getLogger("aiohttp.client").setLevel(logging.WARNING)
