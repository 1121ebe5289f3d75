"""Process-wide logging setup for the bridge.

Handlers installed here carry the application name so a second call (for
example after the configuration is reloaded) replaces them without touching
handlers that a host process or test harness attached to the root logger.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from . import constants

LOGGER = logging.getLogger(__name__)


def configure_logging(
    level: str = constants.DEFAULT_LOG_LEVEL,
    *,
    log_path: Optional[Path] = None,
    log_network: bool = False,
) -> None:
    """Install console and optional file logging on the root logger.

    ``log_network`` keeps per-request aiohttp logging and serial transport
    chatter at ``level``; otherwise those loggers only report warnings.
    """

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.getLevelName(constants.DEFAULT_LOG_LEVEL)

    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() == constants.APP_NAME:
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(constants.LOG_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    for handler in handlers:
        handler.set_name(constants.APP_NAME)
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(numeric_level)
    logging.captureWarnings(True)

    third_party_level = logging.NOTSET if log_network else logging.WARNING
    for name in constants.NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)

    if numeric_level != logging.getLevelName(level.upper()):
        LOGGER.warning("Unknown log level %r, using %s", level, constants.DEFAULT_LOG_LEVEL)
