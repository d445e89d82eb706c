"""Command-line interface for switchbot-relay."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .app import RelayApp, press_once
from .config import load_config
from .errors import RelayError
from .logging import configure_logging
from .responder import dispatch_payload

LOGGER = logging.getLogger(__name__)

_REDACTED_OPTIONS = {("switchbot", "token"), ("switchbot", "secret")}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=constants.APP_NAME,
        description="Relay emotion triggers to SwitchBot devices",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("serve", help="Run the relay HTTP endpoint")

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    press_parser = subparsers.add_parser(
        "press", help="Send a command to a device directly and print the result"
    )
    press_parser.add_argument("device_id", help="SwitchBot device id")
    press_parser.add_argument(
        "--command",
        dest="command_key",
        default=constants.DEFAULT_COMMAND_KEY,
        help=f"SwitchBot command (default: {constants.DEFAULT_COMMAND_KEY})",
    )
    press_parser.add_argument(
        "--times", type=int, default=1, help="Number of presses (default: 1)"
    )

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)

    if args.command == "serve":
        RelayApp.start(config)
        return 0

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                if (section, key) in _REDACTED_OPTIONS and value:
                    value = "********"
                print(f"{key} = {value}")
            print()
        return 0

    if args.command == "press":
        configure_logging(
            config.logging.level,
            log_network=config.logging.log_network,
            secrets=(config.switchbot.token, config.switchbot.secret),
        )
        if args.times < 1 or args.times > config.switchbot.max_times:
            LOGGER.error(
                "--times must be between 1 and %d", config.switchbot.max_times
            )
            return 1
        try:
            result = asyncio.run(
                press_once(config, args.device_id, args.command_key, args.times)
            )
        except RelayError as exc:
            LOGGER.error("Press failed: %s", exc)
            return 1
        print(json.dumps(dispatch_payload(result), indent=2, ensure_ascii=False))
        return 0 if result.ok else 1

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
