"""Main application entry-point for elcb-bridge."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Optional

from .bridge import BridgeController
from .config import BridgeConfig, load_config
from .device_link import Connector, DeviceLinkManager
from .health import HealthReporter
from .logging import configure_logging
from .registry import ClientRegistry
from .server import BridgeServer, create_app

LOGGER = logging.getLogger(__name__)


class BridgeApp:
    """Coordinates startup and shutdown of the bridge.

    The HTTP listener is bound before the device link is started: a listen
    port that cannot be bound is the one fatal error and aborts startup.
    Everything after that recovers on its own.
    """

    def __init__(
        self,
        config: Optional[BridgeConfig] = None,
        *,
        connector: Optional[Connector] = None,
    ) -> None:
        self._config = config or load_config()
        self._health = HealthReporter()
        self._registry = ClientRegistry(self._config.broadcast.send_timeout_seconds)
        self._link = DeviceLinkManager(self._config.serial, connector=connector)
        self._controller = BridgeController(
            self._link,
            self._registry,
            health=self._health,
            greet_clients=self._config.server.greet_clients,
        )
        self._server: Optional[BridgeServer] = None
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def controller(self) -> BridgeController:
        return self._controller

    @classmethod
    def start(cls, config: Optional[BridgeConfig] = None) -> None:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
        )
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("elcb-bridge received shutdown signal")

    async def run(self) -> None:
        """Start services and wait until :meth:`request_shutdown` is called."""

        self._shutdown_event = asyncio.Event()
        await self.start_services()
        self._install_signal_handlers()

        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            LOGGER.info("elcb-bridge received shutdown signal")
            raise
        finally:
            await self.stop_services()

    async def start_services(self) -> None:
        server_config = self._config.server
        app = create_app(
            self._controller,
            health=self._health,
            websocket_path=server_config.websocket_path,
        )
        server = BridgeServer(app, server_config.host, server_config.port)
        await server.start()
        self._server = server

        await self._health.report_serial(False, "connecting")
        await self._health.report_clients(0)

        self._controller.attach()
        self._link.start()

    async def stop_services(self) -> None:
        LOGGER.info("Stopping elcb-bridge")
        await self._link.stop()
        await self._registry.close_all()
        if self._server is not None:
            await self._server.stop()
            self._server = None

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
                loop.add_signal_handler(signum, self.request_shutdown)
