"""Configuration loader for elcb-bridge."""

from __future__ import annotations

import os
from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from . import constants
from .errors import ConfigurationError


@dataclass(slots=True)
class SerialConfig:
    path: str = constants.DEFAULT_SERIAL_PATH
    baud_rate: int = constants.DEFAULT_BAUD_RATE
    open_retry_seconds: float = constants.DEFAULT_OPEN_RETRY_SECONDS
    reconnect_seconds: float = constants.DEFAULT_RECONNECT_SECONDS
    write_timeout_seconds: float = constants.DEFAULT_WRITE_TIMEOUT_SECONDS
    max_line_bytes: int = constants.DEFAULT_MAX_LINE_BYTES


@dataclass(slots=True)
class ServerConfig:
    host: str = constants.DEFAULT_HTTP_HOST
    port: int = constants.DEFAULT_HTTP_PORT
    websocket_path: str = constants.DEFAULT_WEBSOCKET_PATH
    greet_clients: bool = True


@dataclass(slots=True)
class BroadcastConfig:
    send_timeout_seconds: float = constants.DEFAULT_SEND_TIMEOUT_SECONDS


@dataclass(slots=True)
class LoggingConfig:
    level: str = constants.DEFAULT_LOG_LEVEL
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class BridgeConfig:
    serial: SerialConfig
    server: ServerConfig
    broadcast: BroadcastConfig
    logging: LoggingConfig
    raw: ConfigParser
    path: Path


def load_config(
    path: Optional[Path] = None, *, environ: Optional[Mapping[str, str]] = None
) -> BridgeConfig:
    """Load configuration from disk, applying defaults where necessary.

    The ``SERIAL_PORT`` environment variable, when set, overrides the
    configured device path.
    """

    config_path = path or constants.DEFAULT_CONFIG_PATH
    env = os.environ if environ is None else environ

    parser = ConfigParser()
    parser.read_dict(
        {
            "serial": {
                "path": constants.DEFAULT_SERIAL_PATH,
                "baud_rate": str(constants.DEFAULT_BAUD_RATE),
                "open_retry_seconds": str(constants.DEFAULT_OPEN_RETRY_SECONDS),
                "reconnect_seconds": str(constants.DEFAULT_RECONNECT_SECONDS),
                "write_timeout_seconds": str(constants.DEFAULT_WRITE_TIMEOUT_SECONDS),
                "max_line_bytes": str(constants.DEFAULT_MAX_LINE_BYTES),
            },
            "server": {
                "host": constants.DEFAULT_HTTP_HOST,
                "port": str(constants.DEFAULT_HTTP_PORT),
                "websocket_path": constants.DEFAULT_WEBSOCKET_PATH,
                "greet_clients": "true",
            },
            "broadcast": {
                "send_timeout_seconds": str(constants.DEFAULT_SEND_TIMEOUT_SECONDS),
            },
            "logging": {
                "level": constants.DEFAULT_LOG_LEVEL,
                "path": "",
                "log_network": "false",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    env_port = env.get(constants.SERIAL_PORT_ENV, "").strip()
    if env_port:
        parser.set("serial", "path", env_port)

    try:
        serial = SerialConfig(
            path=parser.get("serial", "path").strip(),
            baud_rate=parser.getint("serial", "baud_rate"),
            open_retry_seconds=max(
                0.0, parser.getfloat("serial", "open_retry_seconds")
            ),
            reconnect_seconds=max(0.0, parser.getfloat("serial", "reconnect_seconds")),
            write_timeout_seconds=max(
                0.01, parser.getfloat("serial", "write_timeout_seconds")
            ),
            max_line_bytes=max(64, parser.getint("serial", "max_line_bytes")),
        )

        server = ServerConfig(
            host=parser.get("server", "host"),
            port=parser.getint("server", "port"),
            websocket_path=parser.get("server", "websocket_path"),
            greet_clients=parser.getboolean("server", "greet_clients"),
        )

        broadcast = BroadcastConfig(
            send_timeout_seconds=max(
                0.01, parser.getfloat("broadcast", "send_timeout_seconds")
            ),
        )

        log_path_value = parser.get("logging", "path", fallback="").strip()
        logging_config = LoggingConfig(
            level=parser.get("logging", "level", fallback=constants.DEFAULT_LOG_LEVEL),
            path=Path(log_path_value).expanduser() if log_path_value else None,
            log_network=parser.getboolean("logging", "log_network", fallback=False),
        )
    except ValueError as exc:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {exc}") from exc

    if not serial.path:
        raise ConfigurationError("Serial device path must not be empty")
    if serial.baud_rate <= 0:
        raise ConfigurationError(f"Invalid baud rate: {serial.baud_rate}")
    if not 0 < server.port < 65536:
        raise ConfigurationError(f"Invalid listen port: {server.port}")
    if not server.websocket_path.startswith("/"):
        server.websocket_path = "/" + server.websocket_path

    return BridgeConfig(
        serial=serial,
        server=server,
        broadcast=broadcast,
        logging=logging_config,
        raw=parser,
        path=config_path,
    )
