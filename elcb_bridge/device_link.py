"""Lifecycle management for the serial link to the ELCB controller.

The manager owns the only transport to the device. It opens the port,
pumps received bytes through the frame decoder, notices when the session
ends and schedules the next open attempt. Retries never stop: the device is
expected to be power cycled and unplugged while the bridge keeps running.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import serial_asyncio

from .config import SerialConfig
from .decoder import FrameDecoder
from .errors import BridgeError, NotConnectedError, WriteError
from .events import TelemetryRecord
from .scheduler import DeferredScheduler

LOGGER = logging.getLogger(__name__)

Connector = Callable[..., Awaitable[tuple[asyncio.StreamReader, asyncio.StreamWriter]]]
RecordCallback = Callable[[TelemetryRecord], Awaitable[None] | None]
StatusCallback = Callable[["LinkStatusChange"], Awaitable[None] | None]

# Device paths claimed by a running manager in this process.
_ACTIVE_PATHS: set[str] = set()


class LinkStatus(str, Enum):
    """Current state of the device link."""

    DISCONNECTED = "disconnected"
    """No transport open; an open attempt may be scheduled."""

    CONNECTING = "connecting"
    """An open attempt is in progress."""

    CONNECTED = "connected"
    """Transport open and being read."""


@dataclass(frozen=True, slots=True)
class LinkStatusChange:
    status: LinkStatus
    error: Optional[str] = None
    reconnected: bool = False

    @property
    def connected(self) -> bool:
        return self.status == LinkStatus.CONNECTED


async def open_serial(
    *, url: str, baudrate: int
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    return await serial_asyncio.open_serial_connection(url=url, baudrate=baudrate)


class DeviceLinkManager:
    """Owns the serial transport to a single device path.

    State machine::

        DISCONNECTED -> CONNECTING -> CONNECTED
             ^              |             |
             |   open fails (long delay)  |
             +--------------+             |
             +---- read error / EOF (short delay)

    Every entry into CONNECTED is reported with ``reconnected=True`` so
    subscribers drop any fault state they were holding.
    """

    OPEN_JOB = "open"
    MIN_OPEN_TIMEOUT_SECONDS = 0.05
    READ_CHUNK_BYTES = 1024

    def __init__(
        self,
        config: SerialConfig,
        *,
        connector: Optional[Connector] = None,
        scheduler: Optional[DeferredScheduler] = None,
        decoder: Optional[FrameDecoder] = None,
    ) -> None:
        self._config = config
        self._connector: Connector = connector or open_serial
        self._scheduler = scheduler or DeferredScheduler()
        self._decoder = decoder or FrameDecoder(config.max_line_bytes)

        self._status = LinkStatus.DISCONNECTED
        self._last_error: Optional[str] = None
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._read_task: Optional[asyncio.Task[None]] = None
        self._write_lock = asyncio.Lock()
        self._running = False

        self._record_callbacks: list[RecordCallback] = []
        self._status_callbacks: list[StatusCallback] = []

    @property
    def path(self) -> str:
        return self._config.path

    @property
    def status(self) -> LinkStatus:
        return self._status

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def is_connected(self) -> bool:
        return self._status == LinkStatus.CONNECTED and self._writer is not None

    @property
    def running(self) -> bool:
        return self._running

    def register_record_callback(self, callback: RecordCallback) -> None:
        """Register a callback invoked for every decoded record, in arrival order."""
        self._record_callbacks.append(callback)

    def register_status_callback(self, callback: StatusCallback) -> None:
        """Register a callback invoked on every link status transition."""
        self._status_callbacks.append(callback)

    def start(self) -> None:
        """Claim the device path and schedule the first open attempt."""

        if self._running:
            LOGGER.warning("Device link for %s already running", self.path)
            return
        if self.path in _ACTIVE_PATHS:
            raise BridgeError(f"Device {self.path} is already managed by another link")

        _ACTIVE_PATHS.add(self.path)
        self._running = True
        self._scheduler.reopen()
        LOGGER.info(
            "Connecting to serial device %s @ %d baud", self.path, self._config.baud_rate
        )
        self._scheduler.schedule(self.OPEN_JOB, 0.0, self._open)

    async def stop(self) -> None:
        """Cancel pending retries, close the transport and release the path."""

        if not self._running:
            return
        self._running = False

        await self._scheduler.cancel_all()

        if self._read_task is not None:
            self._read_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._read_task
            self._read_task = None

        await self._close_transport()
        self._status = LinkStatus.DISCONNECTED
        self._last_error = None
        _ACTIVE_PATHS.discard(self.path)
        LOGGER.info("Device link for %s stopped", self.path)

    async def send_command(self, data: bytes) -> None:
        """Write ``data`` to the device.

        Raises:
            NotConnectedError: No transport is open.
            WriteError: The write failed or did not drain in time.
        """

        if not self.is_connected:
            raise NotConnectedError("Serial not connected")

        async with self._write_lock:
            writer = self._writer
            if writer is None or writer.is_closing():
                raise NotConnectedError("Serial not connected")

            timeout = self._config.write_timeout_seconds
            try:
                writer.write(data)
                await asyncio.wait_for(writer.drain(), timeout=timeout)
            except asyncio.TimeoutError as exc:
                raise WriteError(f"Write timed out after {timeout:.1f}s") from exc
            except Exception as exc:
                raise WriteError(str(exc) or exc.__class__.__name__) from exc

        LOGGER.debug("Wrote %r to %s", data, self.path)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _open(self) -> None:
        if not self._running:
            return

        await self._set_status(LinkStatus.CONNECTING, error=self._last_error)

        # An open attempt never outlives the delay before the next one.
        timeout = max(self._config.open_retry_seconds, self.MIN_OPEN_TIMEOUT_SECONDS)
        try:
            reader, writer = await asyncio.wait_for(
                self._connector(url=self.path, baudrate=self._config.baud_rate),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            await self._open_failed(f"Timed out opening serial port after {timeout:.1f}s")
            return
        except Exception as exc:
            await self._open_failed(str(exc) or exc.__class__.__name__)
            return

        if not self._running:
            with contextlib.suppress(Exception):
                writer.close()
            return

        self._reader = reader
        self._writer = writer
        self._decoder.reset()
        LOGGER.info("Serial connected: %s @ %d", self.path, self._config.baud_rate)
        await self._set_status(LinkStatus.CONNECTED, reconnected=True)

        if self._running and self._reader is reader:
            self._read_task = asyncio.create_task(self._read_loop(reader))

    async def _open_failed(self, message: str) -> None:
        delay = self._config.open_retry_seconds
        LOGGER.error("Cannot open serial port %s: %s", self.path, message)
        LOGGER.info("Retrying in %.1fs", delay)
        await self._set_status(LinkStatus.DISCONNECTED, error=message)
        self._schedule_open(delay)

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        error: Optional[str] = None
        try:
            while True:
                chunk = await reader.read(self.READ_CHUNK_BYTES)
                if not chunk:
                    break
                for record in self._decoder.feed(chunk):
                    await self._notify_record(record)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__
            LOGGER.error("Serial error on %s: %s", self.path, error)

        await self._session_ended(error)

    async def _session_ended(self, error: Optional[str]) -> None:
        self._read_task = None
        await self._close_transport()
        if not self._running:
            return

        delay = self._config.reconnect_seconds
        LOGGER.warning("Serial port %s closed. Retrying in %.1fs", self.path, delay)
        await self._set_status(LinkStatus.DISCONNECTED, error=error)
        self._schedule_open(delay)

    def _schedule_open(self, delay: float) -> None:
        if self._running:
            self._scheduler.schedule(self.OPEN_JOB, delay, self._open)

    async def _close_transport(self) -> None:
        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is None:
            return
        with contextlib.suppress(Exception):
            writer.close()
            await asyncio.wait_for(writer.wait_closed(), timeout=1.0)

    async def _set_status(
        self,
        status: LinkStatus,
        *,
        error: Optional[str] = None,
        reconnected: bool = False,
    ) -> None:
        self._status = status
        self._last_error = error
        change = LinkStatusChange(status=status, error=error, reconnected=reconnected)
        for callback in list(self._status_callbacks):
            await _invoke(callback, change, "Link status callback failed")

    async def _notify_record(self, record: TelemetryRecord) -> None:
        for callback in list(self._record_callbacks):
            await _invoke(callback, record, "Record callback failed")


async def _invoke(callback: Callable[[Any], Any], argument: Any, message: str) -> None:
    try:
        result = callback(argument)
        if asyncio.iscoroutine(result):
            await result
    except asyncio.CancelledError:
        raise
    except Exception:
        LOGGER.exception(message)
