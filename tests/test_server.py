"""HTTP and WebSocket surface tests."""

import asyncio
import json

import aiohttp
import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from elcb_bridge.bridge import BridgeController
from elcb_bridge.device_link import DeviceLinkManager
from elcb_bridge.health import HealthReporter
from elcb_bridge.ports import PortDescriptor
from elcb_bridge.registry import ClientRegistry
from elcb_bridge.server import BridgeServer, create_app

from .conftest import FakeClient, wait_until


@pytest_asyncio.fixture
async def bridge_client(serial_config, connector):
    link = DeviceLinkManager(serial_config, connector=connector)
    registry = ClientRegistry(send_timeout=0.5)
    health = HealthReporter()
    controller = BridgeController(
        link,
        registry,
        health=health,
        port_lister=lambda: [
            PortDescriptor(path="/dev/ttyUSB0", description="CP2102 USB to UART"),
            PortDescriptor(path="/dev/ttyACM0", description="Arduino Uno", vid=0x2341, pid=0x0043),
        ],
    )
    controller.attach()
    app = create_app(controller, health=health, websocket_path="/ws")

    async with TestClient(TestServer(app)) as client:
        client.controller = controller
        try:
            yield client
        finally:
            await link.stop()
            await registry.close_all()


async def _receive_json(ws, timeout: float = 1.0):
    message = await asyncio.wait_for(ws.receive(), timeout=timeout)
    assert message.type == aiohttp.WSMsgType.TEXT
    return json.loads(message.data)


@pytest.mark.asyncio
async def test_reset_without_device_returns_503(bridge_client):
    response = await bridge_client.post("/api/reset")
    payload = await response.json()

    assert response.status == 503
    assert payload["ok"] is False
    assert payload["error"] == "not-connected"


@pytest.mark.asyncio
async def test_reset_with_device_sends_byte(bridge_client, connector):
    bridge_client.controller.link.start()
    await wait_until(lambda: bridge_client.controller.link.is_connected)

    response = await bridge_client.post("/api/reset")

    assert response.status == 200
    assert await response.json() == {"ok": True}
    assert bytes(connector.current.writer.written) == b"R"


@pytest.mark.asyncio
async def test_reset_write_failure_returns_500(bridge_client, connector):
    bridge_client.controller.link.start()
    await wait_until(lambda: bridge_client.controller.link.is_connected)
    connector.current.writer.write_error = OSError("Input/output error")

    response = await bridge_client.post("/api/reset")
    payload = await response.json()

    assert response.status == 500
    assert payload == {"ok": False, "error": "write-failed", "detail": "Input/output error"}


@pytest.mark.asyncio
async def test_ports_endpoint_lists_descriptors(bridge_client):
    response = await bridge_client.get("/api/ports")
    payload = await response.json()

    assert response.status == 200
    assert [item["path"] for item in payload] == ["/dev/ttyUSB0", "/dev/ttyACM0"]
    assert payload[1]["vid"] == 0x2341


@pytest.mark.asyncio
async def test_status_endpoint(bridge_client):
    response = await bridge_client.get("/api/status")
    payload = await response.json()

    assert payload["connected"] is False
    assert payload["status"] == "disconnected"
    assert payload["clients"] == 0


@pytest.mark.asyncio
async def test_websocket_receives_greeting_and_telemetry(bridge_client, connector):
    ws = await bridge_client.ws_connect("/ws")
    try:
        assert await _receive_json(ws) == {"type": "serial_status", "connected": False}

        bridge_client.controller.link.start()
        assert await _receive_json(ws) == {"type": "hardware_reset"}
        assert await _receive_json(ws) == {"type": "serial_status", "connected": True}

        connector.current.emit_lines('{"type":"fault","tripCurrent":3.219,"tripTime":48213}')
        message = await asyncio.wait_for(ws.receive(), timeout=1.0)
        assert message.data == '{"type":"fault","tripCurrent":3.219,"tripTime":48213}'
    finally:
        await ws.close()


@pytest.mark.asyncio
async def test_websocket_reset_command_reaches_device(bridge_client, connector):
    bridge_client.controller.link.start()
    await wait_until(lambda: bridge_client.controller.link.is_connected)

    ws = await bridge_client.ws_connect("/ws")
    try:
        await _receive_json(ws)
        await ws.send_str("  Reset \n")
        await ws.send_str("status?")
        await wait_until(lambda: bytes(connector.current.writer.written) == b"R")
    finally:
        await ws.close()

    await wait_until(lambda: len(bridge_client.controller.registry) == 0)
    assert bytes(connector.current.writer.written) == b"R"


@pytest.mark.asyncio
async def test_websocket_reset_without_device_keeps_session(bridge_client):
    ws = await bridge_client.ws_connect("/ws")
    try:
        await _receive_json(ws)
        await ws.send_str("RESET")
        await ws.send_str("RESET")
        response = await bridge_client.get("/api/status")
        payload = await response.json()
        assert payload["clients"] == 1
        assert not ws.closed
    finally:
        await ws.close()


@pytest.mark.asyncio
async def test_healthz_reflects_serial_state(bridge_client):
    controller = bridge_client.controller

    await controller.connect_client(FakeClient())
    response = await bridge_client.get("/healthz")
    payload = await response.json()
    assert response.status == 503
    assert payload["status"] == "degraded"

    controller.link.start()
    await wait_until(lambda: controller.link.is_connected)
    await controller.connect_client(FakeClient())

    response = await bridge_client.get("/healthz")
    assert response.status == 200
    assert (await response.json())["status"] == "ok"


@pytest.mark.asyncio
async def test_bridge_server_bind_conflict_raises(unused_tcp_port, serial_config, connector):
    controller = BridgeController(
        DeviceLinkManager(serial_config, connector=connector), ClientRegistry()
    )
    first = BridgeServer(create_app(controller), "127.0.0.1", unused_tcp_port)
    second = BridgeServer(create_app(controller), "127.0.0.1", unused_tcp_port)

    await first.start()
    try:
        with pytest.raises(OSError):
            await second.start()
    finally:
        await second.stop()
        await first.stop()


@pytest.mark.asyncio
async def test_bridge_server_serves_api(unused_tcp_port, serial_config, connector):
    controller = BridgeController(
        DeviceLinkManager(serial_config, connector=connector),
        ClientRegistry(),
        port_lister=lambda: [],
    )
    server = BridgeServer(create_app(controller), "127.0.0.1", unused_tcp_port)
    await server.start()

    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(f"http://127.0.0.1:{unused_tcp_port}/api/ports") as response:
                assert response.status == 200
                assert await response.json() == []
    finally:
        await server.stop()
