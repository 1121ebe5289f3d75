"""Command-line interface for elcb-bridge."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .app import BridgeApp
from .config import BridgeConfig, load_config
from .errors import ConfigurationError
from .ports import list_endpoints

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=constants.APP_NAME,
        description="Relay ELCB controller telemetry from a serial port to WebSocket clients",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    start_parser = subparsers.add_parser("start", help="Start the bridge")
    start_parser.add_argument("--serial-port", help="Serial device path, e.g. /dev/ttyUSB0")
    start_parser.add_argument("--baud-rate", type=int, help="Serial baud rate")
    start_parser.add_argument("--port", type=int, help="HTTP/WebSocket listen port")

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    ports_parser = subparsers.add_parser(
        "list-ports", help="List serial ports available on this host"
    )
    ports_parser.add_argument(
        "--json", action="store_true", help="Print the port list as JSON"
    )

    return parser


def apply_overrides(config: BridgeConfig, args: argparse.Namespace) -> None:
    serial_port = getattr(args, "serial_port", None)
    baud_rate = getattr(args, "baud_rate", None)
    port = getattr(args, "port", None)

    if serial_port:
        config.serial.path = serial_port
        config.raw.set("serial", "path", serial_port)
    if baud_rate is not None:
        if baud_rate <= 0:
            raise ConfigurationError(f"Invalid baud rate: {baud_rate}")
        config.serial.baud_rate = baud_rate
        config.raw.set("serial", "baud_rate", str(baud_rate))
    if port is not None:
        if not 0 < port < 65536:
            raise ConfigurationError(f"Invalid listen port: {port}")
        config.server.port = port
        config.raw.set("server", "port", str(port))


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "list-ports":
        ports = list_endpoints()
        if args.json:
            print(json.dumps([port.as_dict() for port in ports], indent=2))
        elif not ports:
            print("No serial ports found")
        else:
            for port in ports:
                print(f"{port.path}\t{port.description or ''}")
        return 0

    try:
        config = load_config(args.config)
        apply_overrides(config, args)
    except ConfigurationError as exc:
        LOGGER.error("%s", exc)
        return 1

    if args.command == "start":
        try:
            BridgeApp.start(config)
        except OSError as exc:
            LOGGER.error("Bridge failed to start: %s", exc)
            return 1
        return 0

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
