"""Subscriber bookkeeping and isolated fan-out."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Any, Iterator, Mapping, Optional, Protocol

from . import constants
from .events import TelemetryRecord, serialize_event

LOGGER = logging.getLogger(__name__)

Event = TelemetryRecord | Mapping[str, Any] | str


class ClientHandle(Protocol):
    """One open subscriber connection (``aiohttp.web.WebSocketResponse`` fits)."""

    @property
    def closed(self) -> bool:
        ...

    async def send_str(self, data: str) -> None:
        ...

    async def close(self) -> Any:
        ...


class Command(str, Enum):
    """Commands a subscriber may issue."""

    RESET = "reset"

    @property
    def wire_bytes(self) -> bytes:
        return _WIRE_BYTES[self]


_WIRE_BYTES = {Command.RESET: constants.RESET_COMMAND_BYTE}


def parse_command(message: str) -> Optional[Command]:
    """Recognise ``RESET`` regardless of case and surrounding whitespace."""

    if message.strip().upper() == constants.RESET_COMMAND_TEXT:
        return Command.RESET
    return None


class ClientRegistry:
    """Tracks connected subscribers and delivers broadcasts.

    Each delivery is bounded by ``send_timeout``. A client that is closed,
    raises, or does not accept the frame in time is unregistered and closed
    in the background; the other clients are unaffected.
    """

    def __init__(self, send_timeout: float = constants.DEFAULT_SEND_TIMEOUT_SECONDS) -> None:
        self.send_timeout = send_timeout
        self._clients: list[ClientHandle] = []
        self._closing: set[asyncio.Task[None]] = set()

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, handle: object) -> bool:
        return any(client is handle for client in self._clients)

    def __iter__(self) -> Iterator[ClientHandle]:
        return iter(list(self._clients))

    def register(self, handle: ClientHandle) -> None:
        if handle in self:
            return
        self._clients.append(handle)
        LOGGER.info("Browser connected (%d total)", len(self._clients))

    def unregister(self, handle: ClientHandle) -> bool:
        """Remove ``handle``; returns ``False`` when it was not registered."""

        for index, client in enumerate(self._clients):
            if client is handle:
                del self._clients[index]
                LOGGER.info("Browser disconnected (%d remaining)", len(self._clients))
                return True
        return False

    async def broadcast(self, event: Event) -> int:
        """Send ``event`` to every registered client.

        Returns the number of clients that accepted it.
        """

        clients = list(self._clients)
        if not clients:
            return 0

        message = serialize_event(event)
        results = await asyncio.gather(
            *(self._deliver(client, message) for client in clients)
        )
        return sum(1 for delivered in results if delivered)

    async def send_to(self, handle: ClientHandle, event: Event) -> bool:
        """Send ``event`` to a single registered client."""

        if handle not in self:
            return False
        return await self._deliver(handle, serialize_event(event))

    async def close_all(self) -> None:
        clients = list(self._clients)
        self._clients.clear()
        for client in clients:
            self._close_in_background(client)
        if self._closing:
            await asyncio.gather(*list(self._closing), return_exceptions=True)

    async def _deliver(self, handle: ClientHandle, message: str) -> bool:
        if handle.closed:
            self._drop(handle, "transport not open")
            return False

        try:
            await asyncio.wait_for(handle.send_str(message), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            self._drop(handle, f"send timed out after {self.send_timeout:.2f}s")
            return False
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._drop(handle, str(exc) or exc.__class__.__name__)
            return False
        return True

    def _drop(self, handle: ClientHandle, reason: str) -> None:
        if self.unregister(handle):
            LOGGER.warning("Dropping subscriber: %s", reason)
            self._close_in_background(handle)

    def _close_in_background(self, handle: ClientHandle) -> None:
        task = asyncio.ensure_future(self._close(handle))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def _close(self, handle: ClientHandle) -> None:
        with contextlib.suppress(Exception):
            await asyncio.wait_for(handle.close(), timeout=self.send_timeout)
