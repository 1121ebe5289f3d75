"""aiohttp surface: subscriber WebSocket plus the control endpoints."""

from __future__ import annotations

import contextlib
import logging
from typing import Optional

from aiohttp import WSMsgType, web

from .bridge import BridgeController
from .health import HealthReporter

LOGGER = logging.getLogger(__name__)

CONTROLLER_KEY = web.AppKey("controller", BridgeController)
HEALTH_KEY = web.AppKey("health", HealthReporter)


def create_app(
    controller: BridgeController,
    *,
    health: Optional[HealthReporter] = None,
    websocket_path: str = "/ws",
) -> web.Application:
    app = web.Application()
    app[CONTROLLER_KEY] = controller
    app[HEALTH_KEY] = health or HealthReporter()

    app.router.add_get(websocket_path, handle_websocket)
    app.router.add_post("/api/reset", handle_reset)
    app.router.add_get("/api/ports", handle_ports)
    app.router.add_get("/api/status", handle_status)
    app.router.add_get("/healthz", handle_health)
    return app


async def handle_websocket(request: web.Request) -> web.WebSocketResponse:
    controller = request.app[CONTROLLER_KEY]
    ws = web.WebSocketResponse()
    await ws.prepare(request)

    await controller.connect_client(ws)
    try:
        async for message in ws:
            if message.type == WSMsgType.TEXT:
                await controller.handle_client_message(ws, message.data)
            elif message.type == WSMsgType.ERROR:
                LOGGER.debug("Subscriber websocket error: %s", ws.exception())
                break
    finally:
        await controller.disconnect_client(ws)

    return ws


async def handle_reset(request: web.Request) -> web.Response:
    controller = request.app[CONTROLLER_KEY]
    result = await controller.trigger_reset()
    if result.ok:
        return web.json_response(result.as_dict())

    status = 503 if result.reason == "not-connected" else 500
    return web.json_response(result.as_dict(), status=status)


async def handle_ports(request: web.Request) -> web.Response:
    controller = request.app[CONTROLLER_KEY]
    try:
        ports = controller.list_endpoints()
    except Exception as exc:
        LOGGER.warning("Listing serial ports failed: %s", exc)
        return web.json_response({"ok": False, "error": str(exc)}, status=500)
    return web.json_response([port.as_dict() for port in ports])


async def handle_status(request: web.Request) -> web.Response:
    return web.json_response(request.app[CONTROLLER_KEY].status_snapshot())


async def handle_health(request: web.Request) -> web.Response:
    snapshot = await request.app[HEALTH_KEY].snapshot()
    status = 200 if snapshot["status"] == "ok" else 503
    return web.json_response(snapshot, status=status)


class BridgeServer:
    """Runs the aiohttp application on a TCP port."""

    def __init__(self, app: web.Application, host: str, port: int) -> None:
        self._app = app
        self._host = host
        self._port = port
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    async def start(self) -> None:
        """Bind the listen socket.

        Raises:
            OSError: The port cannot be bound.
        """

        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        try:
            await self._site.start()
        except OSError:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            raise
        LOGGER.info("Dashboard bridge listening on http://%s:%s", self._host, self._port)

    async def stop(self) -> None:
        with contextlib.suppress(Exception):
            if self._site is not None:
                await self._site.stop()
        if self._runner is not None:
            await self._runner.cleanup()
        self._site = None
        self._runner = None
