"""Constants used across the elcb-bridge package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "elcb-bridge"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

SERIAL_PORT_ENV = "SERIAL_PORT"

DEFAULT_SERIAL_PATH = "/dev/ttyACM0"
DEFAULT_BAUD_RATE = 9600

# A failed open usually means the device is unplugged; a dropped session is
# usually a device reboot, which takes one to two seconds.
DEFAULT_OPEN_RETRY_SECONDS = 5.0
DEFAULT_RECONNECT_SECONDS = 1.5
DEFAULT_WRITE_TIMEOUT_SECONDS = 2.0
DEFAULT_MAX_LINE_BYTES = 4096

DEFAULT_HTTP_HOST = "0.0.0.0"
DEFAULT_HTTP_PORT = 3000
DEFAULT_WEBSOCKET_PATH = "/ws"

DEFAULT_SEND_TIMEOUT_SECONDS = 1.0

RESET_COMMAND_TEXT = "RESET"
RESET_COMMAND_BYTE = b"R"

DEFAULT_LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
# Library loggers that report every request or transport event.
NOISY_LOGGERS = (
    "aiohttp.access",
    "aiohttp.server",
    "aiohttp.web",
    "asyncio",
    "serial_asyncio",
)
