import asyncio
import itertools
import json
from collections import deque
from typing import Any, Callable, Optional

import pytest

from elcb_bridge.config import SerialConfig

_PATH_COUNTER = itertools.count()


class FakeSerialWriter:
    """Stands in for the asyncio StreamWriter of an open serial port."""

    def __init__(self) -> None:
        self.written = bytearray()
        self.write_error: Optional[Exception] = None
        self.stall_drain = False
        self._closing = False

    def write(self, data: bytes) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.written.extend(data)

    async def drain(self) -> None:
        if self.stall_drain:
            await asyncio.Event().wait()

    def is_closing(self) -> bool:
        return self._closing

    def close(self) -> None:
        self._closing = True

    async def wait_closed(self) -> None:
        return None


class FakeSerialPort:
    """One open session on the fake device."""

    def __init__(self) -> None:
        self.reader = asyncio.StreamReader()
        self.writer = FakeSerialWriter()

    def emit(self, data: bytes) -> None:
        self.reader.feed_data(data)

    def emit_lines(self, *lines: str) -> None:
        self.emit("".join(line + "\n" for line in lines).encode("utf-8"))

    def unplug(self) -> None:
        self.reader.feed_eof()

    def fail(self, exc: Exception) -> None:
        self.reader.set_exception(exc)


class FakeConnector:
    """Replacement for ``serial_asyncio.open_serial_connection``."""

    def __init__(self) -> None:
        self.failures: deque[Exception] = deque()
        self.fail_always: Optional[Exception] = None
        self.hang = False
        self.calls: list[tuple[str, int, float]] = []
        self.sessions: list[FakeSerialPort] = []

    @property
    def current(self) -> FakeSerialPort:
        return self.sessions[-1]

    async def __call__(self, *, url: str, baudrate: int):
        self.calls.append((url, baudrate, asyncio.get_running_loop().time()))
        if self.hang:
            await asyncio.Event().wait()
        if self.failures:
            raise self.failures.popleft()
        if self.fail_always is not None:
            raise self.fail_always
        port = FakeSerialPort()
        self.sessions.append(port)
        return port.reader, port.writer


class FakeClient:
    """Subscriber handle recording what it was sent."""

    def __init__(self, *, stalled: bool = False, fail: bool = False) -> None:
        self.messages: list[str] = []
        self.closed = False
        self.stalled = stalled
        self.fail = fail
        self.close_calls = 0

    async def send_str(self, data: str) -> None:
        if self.fail:
            raise ConnectionResetError("connection reset by peer")
        if self.stalled:
            await asyncio.Event().wait()
        self.messages.append(data)

    async def close(self) -> None:
        self.close_calls += 1
        self.closed = True

    @property
    def events(self) -> list[dict[str, Any]]:
        return [json.loads(message) for message in self.messages]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def serial_config() -> SerialConfig:
    return SerialConfig(
        path=f"/dev/ttyFAKE{next(_PATH_COUNTER)}",
        baud_rate=9600,
        open_retry_seconds=0.05,
        reconnect_seconds=0.01,
        write_timeout_seconds=0.1,
        max_line_bytes=1024,
    )


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()
