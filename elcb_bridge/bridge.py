"""Protocol policy between the device link and the subscribers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from .device_link import DeviceLinkManager, LinkStatus, LinkStatusChange
from .errors import CommandError
from .events import TelemetryRecord, hardware_reset_event, serial_status_event
from .health import HealthReporter
from .ports import PortDescriptor, list_endpoints
from .registry import ClientHandle, ClientRegistry, Command, parse_command

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ResetResult:
    ok: bool
    reason: Optional[str] = None
    detail: Optional[str] = None

    def as_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"ok": self.ok}
        if self.reason:
            payload["error"] = self.reason
        if self.detail:
            payload["detail"] = self.detail
        return payload


class BridgeController:
    """Wires the device link to the client registry.

    Decoded records are broadcast verbatim. Link transitions become
    ``serial_status`` events, and every (re)connect is preceded by a
    ``hardware_reset`` event so subscribers never keep a fault alarm from a
    previous device session. ``RESET`` from any subscriber is relayed to the
    device as a single ``R`` byte.
    """

    def __init__(
        self,
        link: DeviceLinkManager,
        registry: ClientRegistry,
        *,
        health: Optional[HealthReporter] = None,
        greet_clients: bool = True,
        port_lister: Callable[[], Iterable[PortDescriptor]] = list_endpoints,
    ) -> None:
        self._link = link
        self._registry = registry
        self._health = health
        self._greet_clients = greet_clients
        self._port_lister = port_lister
        self._last_status: Optional[Dict[str, Any]] = None
        self._attached = False

    @property
    def link(self) -> DeviceLinkManager:
        return self._link

    @property
    def registry(self) -> ClientRegistry:
        return self._registry

    def attach(self) -> None:
        """Subscribe to the link's record and status callbacks."""

        if self._attached:
            return
        self._link.register_record_callback(self.on_record)
        self._link.register_status_callback(self.on_status_change)
        self._attached = True

    # ------------------------------------------------------------------
    # Device -> subscribers
    # ------------------------------------------------------------------
    async def on_record(self, record: TelemetryRecord) -> None:
        await self._registry.broadcast(record)

    async def on_status_change(self, change: LinkStatusChange) -> None:
        if change.status == LinkStatus.CONNECTING:
            return

        event = serial_status_event(change.connected, change.error)

        if change.reconnected:
            await self._registry.broadcast(hardware_reset_event())
        elif event == self._last_status:
            # Repeated open failures with the same error.
            return

        self._last_status = event
        await self._registry.broadcast(event)
        await self._report_health()

    # ------------------------------------------------------------------
    # Subscribers -> device
    # ------------------------------------------------------------------
    async def connect_client(self, handle: ClientHandle) -> None:
        self._registry.register(handle)
        if self._greet_clients:
            await self._registry.send_to(handle, self.current_status_event())
        await self._report_health()

    async def disconnect_client(self, handle: ClientHandle) -> None:
        self._registry.unregister(handle)
        await self._report_health()

    async def handle_client_message(self, handle: ClientHandle, message: str) -> None:
        command = parse_command(message)
        if command is None:
            LOGGER.debug("Ignoring subscriber message: %r", message[:80])
            return

        if command == Command.RESET:
            result = await self.trigger_reset()
            if not result.ok:
                LOGGER.warning(
                    "Reset from subscriber rejected: %s", result.detail or result.reason
                )

    async def trigger_reset(self) -> ResetResult:
        """Send the reset byte and report the immediate outcome."""

        try:
            await self._link.send_command(Command.RESET.wire_bytes)
        except CommandError as exc:
            detail = str(exc)
            return ResetResult(
                ok=False,
                reason=exc.reason,
                detail=detail if detail != exc.reason else None,
            )

        LOGGER.info("Reset command sent to device")
        return ResetResult(ok=True)

    # ------------------------------------------------------------------
    # Operator queries
    # ------------------------------------------------------------------
    def list_endpoints(self) -> List[PortDescriptor]:
        return list(self._port_lister())

    def current_status_event(self) -> Dict[str, Any]:
        error = None if self._link.is_connected else self._link.last_error
        return serial_status_event(self._link.is_connected, error)

    def status_snapshot(self) -> Dict[str, object]:
        return {
            "connected": self._link.is_connected,
            "status": self._link.status.value,
            "error": self._link.last_error,
            "path": self._link.path,
            "clients": len(self._registry),
        }

    async def _report_health(self) -> None:
        if self._health is None:
            return
        connected = self._link.is_connected
        await self._health.report_serial(
            connected,
            self._link.status.value if connected else (self._link.last_error or "disconnected"),
        )
        await self._health.report_clients(len(self._registry))
